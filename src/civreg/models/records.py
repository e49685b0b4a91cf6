"""Ledger layouts: column order, identity columns and identity generation."""

import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Literal

from ..codec import Record, Schema

RecordStatus = Literal["pending", "approved", "rejected"]
STATUSES: tuple[str, ...] = ("pending", "approved", "rejected")

ACCOUNT_COLUMNS: tuple[str, ...] = (
    "ID",
    "NAME",
    "EMAIL",
    "PASSWORD_hash",
    "SALT",
    "PHONE",
    "ADDRESS",
    "ROLE",
    "SECRET_CODE",
)

# STATUS sits after REJECT_REASON so older files without it are retrofitted
# by appending a tail column.
BIRTH_RECORD_COLUMNS: tuple[str, ...] = (
    "ID",
    "CERTIFICATE_NO",
    "CHILD_FIRST_NAME",
    "CHILD_MIDDLE_NAME",
    "CHILD_LAST_NAME",
    "GENDER",
    "DATE_OF_BIRTH",
    "NEPALI_DOB",
    "PLACE_OF_BIRTH",
    "PROVINCE",
    "DISTRICT",
    "MUNICIPALITY",
    "WARD",
    "FATHER_FIRST_NAME",
    "FATHER_MIDDLE_NAME",
    "FATHER_LAST_NAME",
    "FATHER_CITIZENSHIP_NO",
    "MOTHER_FIRST_NAME",
    "MOTHER_MIDDLE_NAME",
    "MOTHER_LAST_NAME",
    "MOTHER_CITIZENSHIP_NO",
    "PERMANENT_ADDRESS",
    "CONTACT_NUMBER",
    "REMARKS",
    "REGISTERED_BY",
    "REGISTERED_AT",
    "REJECT_REASON",
    "STATUS",
)


def epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def tie_breaker() -> str:
    return f"{secrets.randbelow(10_000):04d}"


def make_id(tag: str) -> str:
    """``<tag>-<epoch ms>-<random>``; practically unique, not guaranteed."""
    return f"{tag.strip().lower() or 'rec'}-{epoch_ms()}-{tie_breaker()}"


def make_certificate_no(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"BC-{now.year}-{epoch_ms()}{tie_breaker()}"


def _account_identity(fields: Record) -> Record:
    if fields.get("ID"):
        return {}
    return {"ID": make_id(fields.get("ROLE", "user"))}


def _birth_record_identity(fields: Record) -> Record:
    generated: Record = {}
    if not fields.get("ID"):
        generated["ID"] = make_id("br")
    if not fields.get("CERTIFICATE_NO"):
        generated["CERTIFICATE_NO"] = make_certificate_no()
    return generated


@dataclass(frozen=True)
class LedgerLayout:
    """Static description of one ledger kind."""

    name: str
    columns: tuple[str, ...]
    identity_columns: tuple[str, ...]
    generate_identity: Callable[[Record], Record]

    @property
    def schema(self) -> Schema:
        return list(self.columns)


ACCOUNTS = LedgerLayout(
    name="accounts",
    columns=ACCOUNT_COLUMNS,
    identity_columns=("ID",),
    generate_identity=_account_identity,
)

BIRTH_RECORDS = LedgerLayout(
    name="births",
    columns=BIRTH_RECORD_COLUMNS,
    identity_columns=("ID", "CERTIFICATE_NO"),
    generate_identity=_birth_record_identity,
)

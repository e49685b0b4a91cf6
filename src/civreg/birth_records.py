"""Birth registration, review status, and fuzzy lookup."""

import logging
from datetime import datetime, timezone
from typing import Mapping, Optional

from .codec import Record
from .errors import DuplicateKey, InvalidStatus, NotFound
from .ledger import Ledger
from .models.records import STATUSES
from .models.search import Match, SearchQuery
from .similarity import DEFAULT_LIMIT, DEFAULT_THRESHOLD, child_full_name, search

logger = logging.getLogger(__name__)

# Set only by the registry itself, never taken from caller input.
MANAGED_COLUMNS = ("STATUS", "REJECT_REASON", "REGISTERED_BY", "REGISTERED_AT")

full_name = child_full_name


def status_of(record: Record) -> str:
    """Review status; rows written before STATUS existed count as pending."""
    return record.get("STATUS") or "pending"


def register_birth(ledger: Ledger, fields: Mapping[str, str], *, registered_by: str) -> Record:
    """Record a new birth as pending review.

    ``ID`` and ``CERTIFICATE_NO`` are generated unless supplied.

    Raises:
        DuplicateKey: If a supplied ID or CERTIFICATE_NO is already in use
    """
    values = {k: v for k, v in fields.items() if k not in MANAGED_COLUMNS}
    values.update(
        {
            "STATUS": "pending",
            "REJECT_REASON": "",
            "REGISTERED_BY": registered_by,
            "REGISTERED_AT": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }
    )
    record = ledger.append(values, unique_on=("ID", "CERTIFICATE_NO"))
    logger.info(f"Registered birth {record['ID']} certificate {record['CERTIFICATE_NO']}")
    return record


def set_status(ledger: Ledger, record_id: str, status: str, reason: str = "") -> Record:
    """Move a record to pending/approved/rejected.

    The reject reason is kept only for rejected records; any other status
    clears it.

    Raises:
        InvalidStatus: If ``status`` is not a known status
        NotFound: If no record has ``record_id``
    """
    status = status.strip().lower()
    if status not in STATUSES:
        raise InvalidStatus(f"Unknown status {status!r}; expected one of {', '.join(STATUSES)}")

    def apply(record: Record) -> None:
        record["STATUS"] = status
        record["REJECT_REASON"] = reason if status == "rejected" else ""

    try:
        updated = ledger.update_where(lambda r: r.get("ID") == record_id, apply)
    except NotFound:
        raise NotFound(f"No birth record with ID {record_id!r}") from None

    logger.info(f"Birth record {record_id} -> {status}")
    return updated[0]


def get_birth_record(
    ledger: Ledger,
    *,
    record_id: Optional[str] = None,
    certificate_no: Optional[str] = None,
) -> Record:
    if record_id:
        return ledger.find_by_key("ID", record_id)
    if certificate_no:
        return ledger.find_by_key("CERTIFICATE_NO", certificate_no)
    raise ValueError("Either record_id or certificate_no is required")


def search_birth_records(
    ledger: Ledger,
    query: SearchQuery,
    threshold: float = DEFAULT_THRESHOLD,
    limit: int = DEFAULT_LIMIT,
) -> list[Match]:
    """Rank birth records by child name (and date of birth). Reads without locking."""
    return search(query, ledger.records(), threshold=threshold, limit=limit)

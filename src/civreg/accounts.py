"""User account operations on the accounts ledger.

Password hashes and salts arrive precomputed and are stored verbatim.
"""

import logging

from .codec import Record
from .errors import DuplicateKey, NotFound
from .ledger import Ledger, keys_equal

logger = logging.getLogger(__name__)

ADMIN_ROLE = "administrator"
NO_SECRET_CODE = "0"
SENSITIVE_COLUMNS = ("PASSWORD_hash", "SALT")
PROFILE_COLUMNS = {"name": "NAME", "phone": "PHONE", "address": "ADDRESS"}


def find_account(ledger: Ledger, email: str) -> Record:
    """Account with ``email`` (case-insensitive).

    Raises:
        NotFound: If no account uses that email
    """
    try:
        return ledger.find_by_key("EMAIL", email)
    except NotFound:
        raise NotFound(f"No user found with email {email!r}") from None


def public_view(record: Record) -> Record:
    """Copy of an account without its password hash and salt."""
    return {k: v for k, v in record.items() if k not in SENSITIVE_COLUMNS}


def register_account(
    ledger: Ledger,
    *,
    name: str,
    email: str,
    password_hash: str,
    salt: str,
    role: str,
    phone: str = "",
    address: str = "",
    secret_code: str = "",
) -> Record:
    """Create a new account.

    Only administrators keep a secret code; every other role stores "0".

    Raises:
        DuplicateKey: If the email is already registered
    """
    email = email.strip()
    # Fast rejection outside the lock; append() repeats the check under it.
    if any(keys_equal("EMAIL", r.get("EMAIL", ""), email) for r in ledger.records()):
        raise DuplicateKey("EMAIL", email)

    is_admin = role.strip().lower() == ADMIN_ROLE
    record = ledger.append(
        {
            "NAME": name,
            "EMAIL": email,
            "PASSWORD_hash": password_hash,
            "SALT": salt,
            "PHONE": phone,
            "ADDRESS": address,
            "ROLE": role,
            "SECRET_CODE": secret_code if is_admin else NO_SECRET_CODE,
        },
        unique_on=("EMAIL",),
    )
    logger.info(f"Registered account {record['ID']} ({role})")
    return record


def reset_password(ledger: Ledger, email: str, *, password_hash: str, salt: str) -> Record:
    """Replace the password hash and salt of one account, leaving everything else intact."""

    def apply(record: Record) -> None:
        record["PASSWORD_hash"] = password_hash
        record["SALT"] = salt

    try:
        updated = ledger.update_where(lambda r: keys_equal("EMAIL", r.get("EMAIL", ""), email), apply)
    except NotFound:
        raise NotFound(f"No user found with email {email!r}") from None
    return updated[0]


def update_profile(ledger: Ledger, account_id: str, **fields: str) -> Record:
    """Update the editable profile fields (name, phone, address) of one account.

    Raises:
        ValueError: If a non-profile field is passed
        NotFound: If no account has ``account_id``
    """
    unknown = sorted(set(fields) - set(PROFILE_COLUMNS))
    if unknown:
        raise ValueError(f"Profile fields not editable: {', '.join(unknown)}")
    changes = {PROFILE_COLUMNS[k]: v for k, v in fields.items() if v is not None}

    def apply(record: Record) -> None:
        record.update(changes)

    try:
        updated = ledger.update_where(lambda r: r.get("ID") == account_id, apply)
    except NotFound:
        raise NotFound(f"No account with ID {account_id!r}") from None
    return updated[0]

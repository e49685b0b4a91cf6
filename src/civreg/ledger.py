"""Flat-file record ledger.

A Ledger is one comma-separated file: a header line (the schema) followed by
one line per record. Reads are unlocked and may observe a file mid-rewrite by
another writer. Every mutation runs as lock -> snapshot -> write -> unlock,
and updates re-read the file while the lock is held so concurrent
read-modify-write cycles cannot lose each other's changes.
"""

import logging
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional

from .backup import snapshot
from .codec import Record, Schema, encode_row, parse_all, serialize_all
from .errors import DuplicateKey, NotFound
from .locking import DEFAULT_DELAY_SECONDS, DEFAULT_MAX_RETRIES, held_lock
from .models.records import LedgerLayout

logger = logging.getLogger(__name__)


def is_email_column(column: str) -> bool:
    return "EMAIL" in column.upper()


def keys_equal(column: str, left: str, right: str) -> bool:
    """Compare two key values; email-like columns compare case-insensitively."""
    if is_email_column(column):
        return left.strip().casefold() == right.strip().casefold()
    return left == right


def extend_schema(existing: Schema, requested: Iterable[str]) -> Schema:
    """Keep ``existing`` order and append any requested columns it lacks."""
    merged = list(existing)
    for column in requested:
        if column not in merged:
            merged.append(column)
    return merged


def conform(schema: Schema, fields: Mapping[str, object]) -> Record:
    """Build a record with exactly the schema's columns; extras are dropped."""
    return {column: "" if fields.get(column) is None else str(fields.get(column)) for column in schema}


class Ledger:
    """Record collection backed by one file."""

    def __init__(
        self,
        path: Path,
        layout: LedgerLayout,
        backups_dir: Optional[Path] = None,
        lock_max_retries: int = DEFAULT_MAX_RETRIES,
        lock_delay: float = DEFAULT_DELAY_SECONDS,
    ):
        """Initialize a ledger.

        Args:
            path: Ledger file (created on first append)
            layout: Column layout and identity rules for this ledger kind
            backups_dir: Snapshot directory; defaults to ``<parent>/backups``
            lock_max_retries: Lock creation attempts before LockTimeout
            lock_delay: Seconds between lock attempts
        """
        self.path = Path(path)
        self.layout = layout
        self.backups_dir = Path(backups_dir) if backups_dir else self.path.parent / "backups"
        self.lock_max_retries = lock_max_retries
        self.lock_delay = lock_delay

    def __repr__(self) -> str:
        return f"Ledger({self.layout.name!r}, {str(self.path)!r})"

    # Reads (unlocked)

    def load_all(self) -> tuple[Schema, list[Record]]:
        """Schema and records currently on disk; empty if the file is missing."""
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            return [], []
        return parse_all(data)

    def records(self) -> list[Record]:
        return self.load_all()[1]

    def find_all(self, predicate: Callable[[Record], bool]) -> list[Record]:
        return [record for record in self.records() if predicate(record)]

    def find_by_key(self, column: str, value: str) -> Record:
        """First record whose ``column`` equals ``value``.

        Raises:
            NotFound: If no record matches
        """
        for record in self.records():
            if keys_equal(column, record.get(column, ""), value):
                return record
        raise NotFound(f"No record in {self.path.name} with {column}={value!r}")

    # Mutations (locked)

    def _lock(self):
        return held_lock(self.path, max_retries=self.lock_max_retries, delay=self.lock_delay)

    def _write(self, schema: Schema, records: list[Record]) -> None:
        """Replace the whole file content via a temp file and rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_bytes(serialize_all(schema, records))
        tmp.replace(self.path)

    def append(
        self,
        new_fields: Mapping[str, object],
        schema: Optional[Iterable[str]] = None,
        unique_on: Iterable[str] = (),
    ) -> Record:
        """Append one record, creating the file (header first) if needed.

        Missing identity fields are generated from the layout. Columns in
        ``schema`` that the existing header lacks are added at its tail,
        which rewrites the file instead of appending a line.

        Args:
            new_fields: Column values for the new record
            schema: Column order for a new file; defaults to the layout's
            unique_on: Columns whose values must not already exist on disk,
                checked while the lock is held

        Returns:
            The record as written, keyed by the file's schema

        Raises:
            DuplicateKey: If a ``unique_on`` value is already present
            LockTimeout: If the ledger lock cannot be acquired
        """
        requested = list(schema) if schema is not None else self.layout.schema
        fields = {k: "" if v is None else str(v) for k, v in new_fields.items()}
        fields.update(self.layout.generate_identity(fields))

        with self._lock():
            existing_schema, records = self.load_all()

            for column in unique_on:
                value = fields.get(column, "")
                if value and any(keys_equal(column, r.get(column, ""), value) for r in records):
                    raise DuplicateKey(column, value)

            snapshot(self.path, self.backups_dir)

            if not existing_schema:
                record = conform(requested, fields)
                self._write(requested, [record])
            else:
                merged = extend_schema(existing_schema, requested)
                record = conform(merged, fields)
                if merged == existing_schema:
                    self._append_line(merged, record)
                else:
                    logger.info(f"Extending schema of {self.path.name} with {merged[len(existing_schema):]}")
                    self._write(merged, [conform(merged, r) for r in records] + [record])

        logger.info(f"Appended record to {self.path.name}")
        return record

    def _append_line(self, schema: Schema, record: Record) -> None:
        with open(self.path, "rb+") as f:
            f.seek(0, 2)
            prefix = b""
            if f.tell() > 0:
                f.seek(-1, 2)
                if f.read(1) != b"\n":
                    prefix = b"\n"
            f.write(prefix + encode_row(schema, record).encode("utf-8"))

    def rewrite_all(self, records: Iterable[Mapping[str, object]], schema: Optional[Iterable[str]] = None) -> None:
        """Replace the whole ledger with ``records``.

        The on-disk column order is kept; columns from ``schema`` (or the
        layout) that are missing are appended to the tail. Absent values are
        written empty.
        """
        requested = list(schema) if schema is not None else self.layout.schema
        records = list(records)
        with self._lock():
            existing_schema, _ = self.load_all()
            merged = extend_schema(existing_schema, requested)
            snapshot(self.path, self.backups_dir)
            self._write(merged, [conform(merged, r) for r in records])
        logger.info(f"Rewrote {self.path.name} with {len(records)} record(s)")

    def update_where(
        self,
        predicate: Callable[[Record], bool],
        mutate: Callable[[Record], None],
    ) -> list[Record]:
        """Read-modify-write every record matching ``predicate`` under one lock hold.

        ``mutate`` edits a record in place. The rest of the ledger is written
        back unchanged.

        Returns:
            The updated records

        Raises:
            NotFound: If no record matches (nothing is written)
        """
        with self._lock():
            existing_schema, records = self.load_all()
            merged = extend_schema(existing_schema, self.layout.columns)
            records = [conform(merged, r) for r in records]
            targets = [r for r in records if predicate(r)]
            if not targets:
                raise NotFound(f"No matching record in {self.path.name}")

            for record in targets:
                mutate(record)

            snapshot(self.path, self.backups_dir)
            self._write(merged, [conform(merged, r) for r in records])

        logger.info(f"Updated {len(targets)} record(s) in {self.path.name}")
        return [conform(merged, r) for r in targets]

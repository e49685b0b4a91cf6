"""Tests for ledger functionality."""

import logging
import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from civreg.backup import list_snapshots
from civreg.codec import parse_all
from civreg.errors import DuplicateKey, LockTimeout, MalformedRow, NotFound
from civreg.ledger import Ledger, extend_schema, keys_equal
from civreg.locking import lock_path_for
from civreg.models.records import ACCOUNT_COLUMNS, ACCOUNTS, BIRTH_RECORD_COLUMNS, BIRTH_RECORDS


def account(name: str, email: str, role: str = "citizen") -> dict:
    return {"NAME": name, "EMAIL": email, "PASSWORD_hash": "h", "SALT": "s", "ROLE": role}


def test_load_all_missing_file(accounts_ledger):
    assert not accounts_ledger.path.exists()
    assert accounts_ledger.load_all() == ([], [])


def test_append_creates_file_with_header(accounts_ledger):
    record = accounts_ledger.append(account("Asha", "asha@example.com"))

    lines = accounts_ledger.path.read_text().splitlines()
    assert lines[0] == ",".join(ACCOUNT_COLUMNS)
    assert len(lines) == 2
    assert list(record.keys()) == list(ACCOUNT_COLUMNS)
    assert re.fullmatch(r"citizen-\d+-\d{4}", record["ID"])


def test_append_ignores_unknown_columns(accounts_ledger):
    record = accounts_ledger.append({**account("Asha", "asha@example.com"), "FAVOURITE_COLOUR": "red"})

    assert "FAVOURITE_COLOUR" not in record
    schema, _ = accounts_ledger.load_all()
    assert "FAVOURITE_COLOUR" not in schema


def test_append_keeps_supplied_identity(accounts_ledger):
    record = accounts_ledger.append({**account("Asha", "asha@example.com"), "ID": "admin-1-0001"})
    assert record["ID"] == "admin-1-0001"


def test_append_multiple_records_in_order(accounts_ledger):
    for i in range(3):
        accounts_ledger.append(account(f"User {i}", f"user{i}@example.com"))

    records = accounts_ledger.records()
    assert [r["NAME"] for r in records] == ["User 0", "User 1", "User 2"]
    assert len({r["ID"] for r in records}) == 3


def test_append_after_missing_trailing_newline(accounts_ledger):
    accounts_ledger.path.write_text(",".join(ACCOUNT_COLUMNS) + "\nacc-1,Asha,asha@example.com,h,s,,,citizen,0")

    accounts_ledger.append(account("Bikash", "b@example.com"))

    assert [r["NAME"] for r in accounts_ledger.records()] == ["Asha", "Bikash"]


def test_find_by_key_email_is_case_insensitive(accounts_ledger):
    accounts_ledger.append(account("Asha", "Asha@Example.com"))

    assert accounts_ledger.find_by_key("EMAIL", "  asha@example.COM ")["NAME"] == "Asha"


def test_find_by_key_other_columns_are_exact(accounts_ledger):
    record = accounts_ledger.append({**account("Asha", "asha@example.com"), "ID": "Citizen-1-0001"})

    assert accounts_ledger.find_by_key("ID", record["ID"])["NAME"] == "Asha"
    with pytest.raises(NotFound):
        accounts_ledger.find_by_key("ID", "citizen-1-0001")


def test_keys_equal():
    assert keys_equal("EMAIL", "A@B.com", "a@b.com")
    assert keys_equal("CONTACT_EMAIL", "A@B.com", "a@b.com")
    assert not keys_equal("NAME", "Asha", "asha")


def test_append_snapshots_existing_file(accounts_ledger):
    accounts_ledger.append(account("Asha", "asha@example.com"))
    assert list_snapshots(accounts_ledger.backups_dir) == []
    before = accounts_ledger.path.read_bytes()

    accounts_ledger.append(account("Bikash", "b@example.com"))

    snapshots = list_snapshots(accounts_ledger.backups_dir, accounts_ledger.path.name)
    assert len(snapshots) == 1
    assert snapshots[0].read_bytes() == before


def test_mutations_proceed_when_backups_dir_is_a_file(accounts_ledger, caplog):
    accounts_ledger.backups_dir.rmdir()
    accounts_ledger.backups_dir.write_text("not a directory")
    asha = accounts_ledger.append(account("Asha", "asha@example.com"))

    with caplog.at_level(logging.WARNING, logger="civreg.backup"):
        accounts_ledger.append(account("Bikash", "b@example.com"))
        updated = accounts_ledger.update_where(lambda r: r["ID"] == asha["ID"], lambda r: r.update(PHONE="123"))

    assert "Backup of" in caplog.text
    assert [r["ID"] for r in updated] == [asha["ID"]]
    records = accounts_ledger.records()
    assert [r["NAME"] for r in records] == ["Asha", "Bikash"]
    assert records[0]["PHONE"] == "123"
    assert accounts_ledger.backups_dir.read_text() == "not a directory"
    assert not lock_path_for(accounts_ledger.path).exists()


def test_append_unique_on_rejects_duplicate(accounts_ledger):
    accounts_ledger.append(account("Asha", "asha@example.com"))
    before = accounts_ledger.path.read_bytes()

    with pytest.raises(DuplicateKey) as exc_info:
        accounts_ledger.append(account("Impostor", "ASHA@example.com"), unique_on=("EMAIL",))

    assert exc_info.value.column == "EMAIL"
    assert accounts_ledger.path.read_bytes() == before
    assert not lock_path_for(accounts_ledger.path).exists()


def test_concurrent_appends_lose_nothing(accounts_ledger):
    n = 16

    def register(i: int):
        return accounts_ledger.append(account(f"User {i}", f"user{i}@example.com"))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(register, range(n)))

    records = accounts_ledger.records()
    assert len(records) == n
    assert sorted(r["EMAIL"] for r in records) == sorted(f"user{i}@example.com" for i in range(n))
    assert not lock_path_for(accounts_ledger.path).exists()


def test_append_times_out_when_lock_held(store_paths):
    ledger = Ledger(store_paths.accounts_file, ACCOUNTS, lock_max_retries=2, lock_delay=0.01)
    ledger.append(account("Asha", "asha@example.com"))
    before = ledger.path.read_bytes()
    lock_path_for(ledger.path).write_text("pid=0 thread=0")

    with pytest.raises(LockTimeout):
        ledger.append(account("Bikash", "b@example.com"))

    assert ledger.path.read_bytes() == before


def test_rewrite_all_preserves_column_order_and_extends_tail(accounts_ledger):
    accounts_ledger.path.write_text("ID,EMAIL,NAME\nacc-1,asha@example.com,Asha\n")
    _, records = accounts_ledger.load_all()
    records[0]["PHONE"] = "9800000000"

    accounts_ledger.rewrite_all(records)

    schema, rewritten = accounts_ledger.load_all()
    assert schema[:3] == ["ID", "EMAIL", "NAME"]
    assert schema[3:] == [c for c in ACCOUNT_COLUMNS if c not in ("ID", "EMAIL", "NAME")]
    assert rewritten[0]["PHONE"] == "9800000000"
    assert rewritten[0]["ROLE"] == ""


def test_rewrite_all_replaces_content(accounts_ledger):
    accounts_ledger.append(account("Asha", "asha@example.com"))
    accounts_ledger.append(account("Bikash", "b@example.com"))

    accounts_ledger.rewrite_all([r for r in accounts_ledger.records() if r["NAME"] == "Bikash"])

    assert [r["NAME"] for r in accounts_ledger.records()] == ["Bikash"]
    assert not accounts_ledger.path.with_name(accounts_ledger.path.name + ".tmp").exists()


def test_append_extends_legacy_schema(birth_ledger):
    legacy_columns = [c for c in BIRTH_RECORD_COLUMNS if c not in ("REJECT_REASON", "STATUS")]
    birth_ledger.path.write_text(",".join(legacy_columns) + "\nbr-1,BC-2023-1,Arjun\n")

    birth_ledger.append({"CHILD_FIRST_NAME": "Maya", "STATUS": "pending"})

    schema, records = birth_ledger.load_all()
    assert schema == legacy_columns + ["REJECT_REASON", "STATUS"]
    assert records[0]["CHILD_FIRST_NAME"] == "Arjun"
    assert records[0]["STATUS"] == ""
    assert records[1]["STATUS"] == "pending"


def test_update_where_only_touches_matches(accounts_ledger):
    asha = accounts_ledger.append(account("Asha", "asha@example.com"))
    bikash = accounts_ledger.append(account("Bikash", "b@example.com"))

    updated = accounts_ledger.update_where(lambda r: r["ID"] == asha["ID"], lambda r: r.update(PHONE="123"))

    assert [r["ID"] for r in updated] == [asha["ID"]]
    assert accounts_ledger.find_by_key("ID", asha["ID"])["PHONE"] == "123"
    assert accounts_ledger.find_by_key("ID", bikash["ID"]) == bikash


def test_update_where_not_found_writes_nothing(accounts_ledger):
    accounts_ledger.append(account("Asha", "asha@example.com"))
    before = accounts_ledger.path.read_bytes()
    snapshots_before = list_snapshots(accounts_ledger.backups_dir)

    with pytest.raises(NotFound):
        accounts_ledger.update_where(lambda r: r["ID"] == "nobody", lambda r: r.update(NAME="x"))

    assert accounts_ledger.path.read_bytes() == before
    assert list_snapshots(accounts_ledger.backups_dir) == snapshots_before
    assert not lock_path_for(accounts_ledger.path).exists()


def test_concurrent_updates_do_not_lose_each_other(birth_ledger):
    ids = [birth_ledger.append({"CHILD_FIRST_NAME": f"Child {i}"})["ID"] for i in range(10)]

    def approve(record_id: str):
        birth_ledger.update_where(lambda r: r["ID"] == record_id, lambda r: r.update(STATUS="approved"))

    with ThreadPoolExecutor(max_workers=5) as pool:
        list(pool.map(approve, ids))

    assert all(r["STATUS"] == "approved" for r in birth_ledger.records())


def test_malformed_file_propagates(birth_ledger):
    birth_ledger.path.write_text('ID,CHILD_FIRST_NAME\nbr-1,"Arjun\n')

    with pytest.raises(MalformedRow):
        birth_ledger.load_all()
    with pytest.raises(MalformedRow):
        birth_ledger.append({"CHILD_FIRST_NAME": "Maya"})
    assert not lock_path_for(birth_ledger.path).exists()


def test_extend_schema():
    assert extend_schema(["B", "A"], ["A", "B", "C"]) == ["B", "A", "C"]
    assert extend_schema([], ["A"]) == ["A"]


def test_written_file_is_parseable(birth_ledger):
    birth_ledger.append({"CHILD_FIRST_NAME": "Arjun", "REMARKS": 'born at "home", ward 4\nnight'})

    schema, records = parse_all(birth_ledger.path.read_bytes())
    assert schema == list(BIRTH_RECORD_COLUMNS)
    assert records[0]["REMARKS"] == 'born at "home", ward 4\nnight'
    assert birth_ledger.layout is BIRTH_RECORDS

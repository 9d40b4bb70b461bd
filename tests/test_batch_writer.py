import math
import threading

import pytest

from app.db.models import Lead
from app.domain.imports.batch_writer import BatchWriter, PendingLead, SqlLeadStore
from app.domain.imports.enquiry_numbers import EnquiryNumberGenerator
from app.domain.imports.normalizer import LeadRecord
from app.domain.imports.progress import ErrorCollector, ImportStats


class FakeLeadStore:
    """In-memory stand-in for the lead table."""

    def __init__(self, existing=(), fail_names=()):
        self.phones = set(existing)
        self.fail_names = set(fail_names)
        self.inserted = []
        self.lookups = 0
        self._lock = threading.Lock()

    def existing_phones(self, phones):
        self.lookups += 1
        return {phone for phone in phones if phone in self.phones}

    def insert(self, record):
        if record.name in self.fail_names:
            raise RuntimeError(f"constraint failed for {record.name}")
        with self._lock:
            self.phones.add(record.phone)
            self.inserted.append(record)


def _pending(index, phone=None, name=None):
    phone = phone or f"98{index:08d}"
    record = LeadRecord(name=name or f"Student {index}", phone=phone, father_phone=phone)
    return PendingLead(record=record, sheet="Sheet1", row_number=index + 2)


def _writer(store, chunk_size=2000, write_workers=1, cap=200, on_chunk_written=None):
    stats = ImportStats()
    errors = ErrorCollector(cap)
    writer = BatchWriter(
        store,
        stats,
        errors,
        EnquiryNumberGenerator("ENQ25", 1),
        chunk_size=chunk_size,
        write_workers=write_workers,
        on_chunk_written=on_chunk_written,
    )
    return writer, stats, errors


@pytest.mark.parametrize("rows, chunk_size", [(0, 3), (1, 3), (3, 3), (7, 3), (10, 4), (25, 2000)])
def test_flush_count_is_ceiling_of_rows_over_chunk_size(rows, chunk_size):
    store = FakeLeadStore()
    writer, stats, _ = _writer(store, chunk_size=chunk_size)

    for index in range(rows):
        writer.add(_pending(index))
    writer.flush()

    assert writer.chunks_flushed == math.ceil(rows / chunk_size)
    assert stats.total_success + stats.total_errors == writer.records_received == rows


def test_duplicate_phone_in_same_batch_rejects_second_row():
    store = FakeLeadStore()
    writer, stats, errors = _writer(store)

    writer.add(_pending(0, phone="9876543210", name="First"))
    writer.add(_pending(1, phone="9876543210", name="Second"))
    writer.flush()

    assert [record.name for record in store.inserted] == ["First"]
    assert stats.total_success == 1
    assert stats.total_errors == 1
    assert "Duplicate phone number 9876543210" in errors.details[0].error
    assert errors.details[0].row_number == 3


def test_phone_already_stored_is_rejected():
    store = FakeLeadStore(existing={"9000000000"})
    writer, stats, _ = _writer(store)

    writer.add(_pending(0, phone="9000000000"))
    writer.add(_pending(1))
    writer.flush()

    assert stats.total_success == 1
    assert stats.total_errors == 1


def test_duplicates_across_chunks_are_caught():
    store = FakeLeadStore()
    writer, stats, _ = _writer(store, chunk_size=2)

    writer.add(_pending(0, phone="9876543210"))
    writer.add(_pending(1))
    writer.add(_pending(2, phone="9876543210"))
    writer.flush()

    assert writer.chunks_flushed == 2
    assert stats.total_success == 2
    assert stats.total_errors == 1


@pytest.mark.parametrize("write_workers", [1, 4])
def test_failed_insert_does_not_affect_siblings(write_workers):
    store = FakeLeadStore(fail_names={"Student 2"})
    writer, stats, errors = _writer(store, write_workers=write_workers)

    for index in range(6):
        writer.add(_pending(index))
    writer.flush()

    assert stats.total_success == 5
    assert stats.total_errors == 1
    assert sorted(record.name for record in store.inserted) == [
        f"Student {index}" for index in (0, 1, 3, 4, 5)
    ]
    assert errors.details[0].error == "constraint failed for Student 2"


def test_enquiry_numbers_follow_source_order_and_skip_duplicates():
    store = FakeLeadStore()
    writer, _, _ = _writer(store, write_workers=4)

    writer.add(_pending(0, phone="9000000001"))
    writer.add(_pending(1, phone="9000000001"))
    writer.add(_pending(2, phone="9000000002"))
    writer.flush()

    numbers = {record.phone: record.enquiry_number for record in store.inserted}
    assert numbers == {"9000000001": "ENQ25000001", "9000000002": "ENQ25000002"}


def test_failed_duplicate_lookup_rejects_whole_chunk():
    class BrokenLookupStore(FakeLeadStore):
        def existing_phones(self, phones):
            raise RuntimeError("database is locked")

    store = BrokenLookupStore()
    writer, stats, errors = _writer(store)
    for index in range(3):
        writer.add(_pending(index))
    writer.flush()

    assert stats.total_errors == 3
    assert stats.total_success == 0
    assert store.inserted == []
    assert errors.details[0].error.startswith("Duplicate check failed")


def test_error_details_are_capped_but_counted():
    store = FakeLeadStore(existing={"9000000000"})
    writer, stats, errors = _writer(store, cap=5)

    for index in range(12):
        writer.add(_pending(index, phone="9000000000"))
    writer.flush()

    assert stats.total_errors == 12
    assert len(errors) == 5
    assert errors.total == 12
    assert [detail.row_number for detail in errors.details] == [2, 3, 4, 5, 6]


def test_chunk_callback_runs_after_each_flush():
    calls = []
    store = FakeLeadStore()
    writer, stats, _ = _writer(store, chunk_size=2, on_chunk_written=lambda: calls.append(stats.total_success))

    for index in range(5):
        writer.add(_pending(index))
    writer.flush()

    assert calls == [2, 4, 5]


def test_chunk_size_must_be_positive():
    with pytest.raises(ValueError):
        _writer(FakeLeadStore(), chunk_size=0)


def test_sql_store_inserts_and_finds_phones(session_factory, db_session):
    store = SqlLeadStore(session_factory)
    record = LeadRecord(name="Ravi", phone="9876543210", father_phone="9876543210", enquiry_number="ENQ25000001")

    store.insert(record)

    assert store.existing_phones(["9876543210", "9000000000", ""]) == {"9876543210"}
    stored = db_session.query(Lead).one()
    assert stored.enquiry_number == "ENQ25000001"
    assert stored.dynamic_fields is None


def test_sql_store_surfaces_constraint_violations(session_factory):
    store = SqlLeadStore(session_factory)
    store.insert(LeadRecord(name="A", phone="1", father_phone="1", enquiry_number="ENQ25000001"))

    with pytest.raises(Exception):
        store.insert(LeadRecord(name="B", phone="2", father_phone="2", enquiry_number="ENQ25000001"))

    # the session was rolled back, so later inserts still work
    store.insert(LeadRecord(name="C", phone="3", father_phone="3", enquiry_number="ENQ25000002"))
    assert store.existing_phones(["1", "2", "3"]) == {"1", "3"}

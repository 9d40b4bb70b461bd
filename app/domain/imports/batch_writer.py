"""
Chunked, fault-isolated persistence of normalized leads.

Records are buffered until ``chunk_size`` is reached and then written as one
chunk. Within a chunk every insert is attempted independently (optionally on
a small thread pool), so one bad row never takes its siblings down. Chunks
are written strictly one after another: chunk N+1 starts only after chunk N
has settled, which keeps the duplicate-phone check consistent.
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
import logging
import uuid
from typing import Callable, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from app.db.models import Lead
from app.db.session import get_session_local
from app.domain.imports.enquiry_numbers import EnquiryNumberGenerator
from app.domain.imports.normalizer import LeadRecord
from app.domain.imports.progress import ErrorCollector, ImportStats

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 2000
_PHONE_LOOKUP_BATCH = 500


@dataclass
class PendingLead:
    record: LeadRecord
    sheet: Optional[str]
    row_number: Optional[int]


class DuplicatePhoneError(ValueError):
    def __init__(self, phone: str):
        self.phone = phone
        super().__init__(f"Duplicate phone number {phone}: a lead with this phone already exists")


def describe_insert_error(exc: Exception) -> str:
    # SQLAlchemy wraps the driver error; its message is the useful part.
    origin = getattr(exc, "orig", None)
    message = str(origin if origin is not None else exc).strip()
    return message or "Insert failed"


def lead_from_record(record: LeadRecord) -> Lead:
    return Lead(
        id=str(uuid.uuid4()),
        enquiry_number=record.enquiry_number,
        name=record.name,
        phone=record.phone,
        email=record.email,
        father_name=record.father_name,
        father_phone=record.father_phone,
        mother_name=record.mother_name,
        hall_ticket_number=record.hall_ticket_number,
        village=record.village,
        course_interested=record.course_interested,
        district=record.district,
        mandal=record.mandal,
        state=record.state,
        gender=record.gender,
        rank=record.rank,
        inter_college=record.inter_college,
        quota=record.quota,
        application_status=record.application_status,
        lead_status=record.lead_status,
        source=record.source,
        notes=record.notes,
        academic_year=record.academic_year,
        student_group=record.student_group,
        school_or_college_name=record.school_or_college_name,
        dynamic_fields=record.dynamic_fields_or_none(),
        needs_manual_update=record.needs_manual_update,
        uploaded_by=record.uploaded_by,
        upload_batch_id=record.upload_batch_id,
    )


class SqlLeadStore:
    """Lead persistence backed by the SQLAlchemy session factory; one transaction per insert."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory or get_session_local()

    def existing_phones(self, phones: Iterable[str]) -> Set[str]:
        wanted = sorted({phone for phone in phones if phone})
        found: Set[str] = set()
        if not wanted:
            return found
        db = self._session_factory()
        try:
            for start in range(0, len(wanted), _PHONE_LOOKUP_BATCH):
                batch = wanted[start:start + _PHONE_LOOKUP_BATCH]
                rows = db.query(Lead.phone).filter(Lead.phone.in_(batch)).all()
                found.update(row[0] for row in rows)
        finally:
            db.close()
        return found

    def insert(self, record: LeadRecord) -> None:
        db = self._session_factory()
        try:
            db.add(lead_from_record(record))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class BatchWriter:
    """
    Buffers :class:`PendingLead` entries and writes them in bounded chunks.

    The writer updates ``stats.total_success`` / ``stats.total_errors`` and
    records failure reasons in ``errors``. No exception from an individual
    record escapes :meth:`flush`.
    """

    def __init__(
        self,
        store,
        stats: ImportStats,
        errors: ErrorCollector,
        numbers: EnquiryNumberGenerator,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        write_workers: int = 1,
        on_chunk_written: Optional[Callable[[], None]] = None,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.store = store
        self.stats = stats
        self.errors = errors
        self.numbers = numbers
        self.chunk_size = chunk_size
        self.write_workers = max(1, write_workers)
        self.on_chunk_written = on_chunk_written
        self.chunks_flushed = 0
        self.records_received = 0
        self._buffer: List[PendingLead] = []

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def add(self, entry: PendingLead) -> None:
        self._buffer.append(entry)
        self.records_received += 1
        if len(self._buffer) >= self.chunk_size:
            self.flush()

    def flush(self) -> None:
        """Write whatever is buffered as one chunk."""
        if not self._buffer:
            return
        chunk, self._buffer = self._buffer, []
        self.chunks_flushed += 1
        success, failed = self._write_chunk(chunk)
        logger.info(
            "Chunk %d written: %d succeeded, %d failed",
            self.chunks_flushed,
            success,
            failed,
        )
        if self.on_chunk_written is not None:
            self.on_chunk_written()

    def _reject(self, entry: PendingLead, message: str) -> None:
        self.stats.total_errors += 1
        self.errors.add(entry.sheet, entry.row_number, message)
        logger.debug("Row %s:%s rejected: %s", entry.sheet, entry.row_number, message)

    def _partition_duplicates(self, chunk: List[PendingLead]) -> List[PendingLead]:
        try:
            existing = self.store.existing_phones(entry.record.phone for entry in chunk)
        except Exception as exc:
            logger.error("Duplicate lookup failed for chunk %d: %s", self.chunks_flushed, exc)
            for entry in chunk:
                self._reject(entry, f"Duplicate check failed: {exc}")
            return []

        seen: Set[str] = set()
        writable: List[PendingLead] = []
        for entry in chunk:
            phone = entry.record.phone
            if phone and (phone in existing or phone in seen):
                self._reject(entry, str(DuplicatePhoneError(phone)))
                continue
            if phone:
                seen.add(phone)
            # Numbers follow source order; a failed insert leaves a gap.
            entry.record.enquiry_number = self.numbers.next()
            writable.append(entry)
        return writable

    def _insert_one(self, entry: PendingLead) -> None:
        self.store.insert(entry.record)

    def _write_chunk(self, chunk: List[PendingLead]):
        errors_before = self.stats.total_errors
        success_before = self.stats.total_success

        writable = self._partition_duplicates(chunk)

        if self.write_workers == 1 or len(writable) <= 1:
            for entry in writable:
                try:
                    self._insert_one(entry)
                except Exception as exc:
                    self._reject(entry, describe_insert_error(exc))
                else:
                    self.stats.total_success += 1
        else:
            with ThreadPoolExecutor(max_workers=self.write_workers) as executor:
                future_to_entry = {executor.submit(self._insert_one, entry): entry for entry in writable}
                for future in as_completed(future_to_entry):
                    entry = future_to_entry[future]
                    try:
                        future.result()
                    except Exception as exc:
                        self._reject(entry, describe_insert_error(exc))
                    else:
                        self.stats.total_success += 1

        return (
            self.stats.total_success - success_before,
            self.stats.total_errors - errors_before,
        )

"""
Import job execution.

A job reads its staged file sheet by sheet, turns each row into a
:class:`LeadRecord`, flags unreconciled geography and hands the record to
the :class:`BatchWriter`. Progress is persisted at most once per
``progress_interval_seconds`` plus once at start and once at the end.

Failure policy:

- row problems are counted and recorded, the job continues;
- an unexpected error inside one sheet abandons that sheet only;
- an unreadable source fails the whole job;
- a master-data load failure flags every record for manual review.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_session_local
from app.domain.imports.batch_writer import BatchWriter, PendingLead, SqlLeadStore
from app.domain.imports.enquiry_numbers import EnquiryNumberGenerator
from app.domain.imports.jobs import (
    QUEUED,
    PROCESSING,
    complete_import_job,
    get_import_job,
    record_error_details,
    update_import_job,
)
from app.domain.imports.normalizer import is_blank_row, normalize_row
from app.domain.imports.processors.tabular_reader import (
    SourceReadError,
    SourceRow,
    TabularSource,
    open_tabular_source,
)
from app.domain.imports.progress import ErrorCollector, ImportStats, ProgressThrottle
from app.domain.imports.reconciler import MasterDataLookup, load_master_data, reconcile_record
from app.domain.uploads.sessions import remove_staged_file

logger = logging.getLogger(__name__)

JOB_FAILURE_SHEET = "N/A"


def completion_message(stats: ImportStats) -> str:
    return (
        f"Imported {stats.total_success} of {stats.total_processed} row(s). "
        f"{stats.total_errors} error(s)."
    )


class LeadImportRunner:
    """Runs one queued job to a terminal state. Not reusable."""

    def __init__(
        self,
        job: Dict[str, Any],
        *,
        session_factory: Optional[Callable[[], Session]] = None,
        lead_store=None,
        chunk_size: Optional[int] = None,
        write_workers: Optional[int] = None,
        progress_interval: Optional[float] = None,
        max_error_details: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.job = job
        self.job_id = job["job_id"]
        self.session_factory = session_factory or get_session_local()
        self.lead_store = lead_store or SqlLeadStore(self.session_factory)
        self.chunk_size = chunk_size or settings.lead_import_chunk_size
        self.write_workers = write_workers or settings.lead_import_write_workers
        self.stats = ImportStats()
        self.errors = ErrorCollector(
            max_error_details if max_error_details is not None else settings.max_error_details
        )
        interval = progress_interval if progress_interval is not None else settings.progress_interval_seconds
        self.throttle = ProgressThrottle(interval, clock=clock)
        self._clock = clock
        self._started = clock()

    # -- persistence -------------------------------------------------------

    def _elapsed_ms(self) -> int:
        return int((self._clock() - self._started) * 1000)

    def _persist_progress(self, force: bool = False) -> None:
        """Best-effort progress snapshot; never fails the import."""
        if not self.throttle.ready(force=force):
            return
        self.stats.duration_ms = self._elapsed_ms()
        try:
            record_error_details(self.job_id, self.errors.drain_pending(), session_factory=self.session_factory)
            update_import_job(
                self.job_id,
                message=self.stats.summary(),
                stats=self.stats,
                session_factory=self.session_factory,
            )
        except Exception as exc:
            logger.warning("Unable to persist progress for job %s: %s", self.job_id, exc)

    def _finish(self, success: bool, message: str) -> Optional[Dict[str, Any]]:
        self.stats.duration_ms = self._elapsed_ms()
        try:
            record_error_details(self.job_id, self.errors.drain_pending(), session_factory=self.session_factory)
            return complete_import_job(
                self.job_id,
                success=success,
                stats=self.stats,
                message=message,
                session_factory=self.session_factory,
            )
        except Exception:
            logger.exception("Unable to record final state of import job %s", self.job_id)
            return None

    # -- collaborators -----------------------------------------------------

    def _load_master_data(self) -> Optional[MasterDataLookup]:
        try:
            with self.session_factory() as db:
                return load_master_data(db)
        except Exception as exc:
            logger.warning(
                "Master data unavailable for job %s, every lead will need manual review: %s",
                self.job_id,
                exc,
            )
            return None

    def _resume_numbers(self) -> EnquiryNumberGenerator:
        with self.session_factory() as db:
            return EnquiryNumberGenerator.resume(db)

    # -- row flow ----------------------------------------------------------

    def _process_row(self, source_row: SourceRow, writer: BatchWriter, lookup: Optional[MasterDataLookup]) -> None:
        if is_blank_row(source_row.values):
            return
        try:
            record = normalize_row(source_row.values, default_source=self.job.get("source_label"))
        except (ValueError, TypeError) as exc:
            self.stats.total_processed += 1
            self.stats.total_errors += 1
            self.errors.add(source_row.sheet, source_row.row_number, str(exc))
            logger.debug("Row %s:%s invalid: %s", source_row.sheet, source_row.row_number, exc)
            return
        if record is None:
            return

        self.stats.total_processed += 1
        reconcile_record(record, lookup)
        record.upload_batch_id = self.job.get("batch_id")
        record.uploaded_by = self.job.get("created_by")
        writer.add(PendingLead(record=record, sheet=source_row.sheet, row_number=source_row.row_number))

    def _process_sheet(
        self,
        source: TabularSource,
        sheet: str,
        writer: BatchWriter,
        lookup: Optional[MasterDataLookup],
    ) -> None:
        logger.info("Job %s: processing sheet %s", self.job_id, sheet)
        try:
            for source_row in source.iter_rows(sheet):
                self._process_row(source_row, writer, lookup)
                self._persist_progress()
        except SourceReadError:
            raise
        except Exception as exc:
            logger.warning("Job %s: sheet %s abandoned: %s", self.job_id, sheet, exc)
            self.errors.add(sheet, None, f"Sheet processing failed: {exc}")
        finally:
            self.stats.mark_sheet(sheet)

    def run(self) -> Optional[Dict[str, Any]]:
        file_path = self.job.get("file_path")
        logger.info("Starting import job %s (%s)", self.job_id, self.job.get("original_name"))
        try:
            update_import_job(
                self.job_id,
                status=PROCESSING,
                message="Processing",
                started=True,
                session_factory=self.session_factory,
            )
            self.throttle.ready(force=True)

            lookup = self._load_master_data()
            writer = BatchWriter(
                self.lead_store,
                self.stats,
                self.errors,
                self._resume_numbers(),
                chunk_size=self.chunk_size,
                write_workers=self.write_workers,
                on_chunk_written=self._persist_progress,
            )

            selected: List[str] = list(self.job.get("selected_sheets") or [])
            with open_tabular_source(file_path, self.job.get("extension") or "") as source:
                for sheet in source.resolve_sheets(selected):
                    self._process_sheet(source, sheet, writer, lookup)
            writer.flush()
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.error("Import job %s failed: %s", self.job_id, message)
            self.errors.add_fatal(JOB_FAILURE_SHEET, message)
            return self._finish(False, message)
        else:
            message = completion_message(self.stats)
            logger.info("Import job %s completed: %s", self.job_id, message)
            return self._finish(True, message)
        finally:
            remove_staged_file(file_path)


def process_import_job(job_id: str, **runner_options) -> Optional[Dict[str, Any]]:
    """
    Worker entry point: run the queued job ``job_id`` to completion or failure.

    Jobs that already left ``queued`` are not run again.
    """
    session_factory = runner_options.get("session_factory")
    job = get_import_job(job_id, session_factory=session_factory)
    if job is None:
        logger.error("Import job %s not found", job_id)
        return None
    if job["status"] != QUEUED:
        logger.warning("Import job %s is %s; not running it again", job_id, job["status"])
        return job
    return LeadImportRunner(job, **runner_options).run()

"""
ORM models for leads, import jobs and the location/institution master data.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)

from app.db.session import Base


def utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


IMPORT_JOB_STATUSES = ("queued", "processing", "completed", "failed")


class Lead(Base):
    """A single admissions enquiry. Only the columns the import pipeline writes are modelled."""
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True)
    enquiry_number = Column(String(50), unique=True, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False, index=True)
    email = Column(String(255))
    father_name = Column(String(255))
    father_phone = Column(String(20), nullable=False)
    mother_name = Column(String(255))
    hall_ticket_number = Column(String(100), default="")
    village = Column(String(255))
    course_interested = Column(String(255))
    district = Column(String(255), index=True)
    mandal = Column(String(255), index=True)
    state = Column(String(255))
    gender = Column(String(50), default="Not Specified")
    rank = Column(Integer)
    inter_college = Column(String(255))
    quota = Column(String(100), default="Not Applicable")
    application_status = Column(String(100), default="Not Provided")
    lead_status = Column(String(50), default="New")
    source = Column(String(255))
    notes = Column(Text)
    academic_year = Column(Integer, index=True)
    student_group = Column(String(50), index=True)
    school_or_college_name = Column(String(255))
    dynamic_fields = Column(JSON)
    needs_manual_update = Column(Boolean, default=False, nullable=False, index=True)
    uploaded_by = Column(String(36))
    upload_batch_id = Column(String(255), index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ImportJob(Base):
    """Durable record of one bulk import, mutated only by the worker running it."""
    __tablename__ = "import_jobs"

    id = Column(String(36), primary_key=True)
    upload_id = Column(String(255), unique=True, nullable=False, index=True)
    upload_batch_id = Column(String(255), index=True)
    upload_token = Column(String(255))
    original_name = Column(String(255))
    file_path = Column(Text, nullable=False)
    file_size = Column(BigInteger)
    extension = Column(String(10))
    selected_sheets = Column(JSON, default=list)
    source_label = Column(String(255))
    status = Column(String(50), nullable=False, default="queued", index=True)
    created_by = Column(String(36))
    message = Column(Text)
    stats_total_processed = Column(Integer, default=0)
    stats_total_success = Column(Integer, default=0)
    stats_total_errors = Column(Integer, default=0)
    stats_sheets_processed = Column(JSON, default=list)
    stats_duration_ms = Column(BigInteger)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ImportJobErrorDetail(Base):
    __tablename__ = "import_job_error_details"

    id = Column(Integer, primary_key=True, autoincrement=True)
    import_job_id = Column(String(36), ForeignKey("import_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    sheet = Column(String(255))
    row_number = Column(Integer)
    error = Column(Text)
    created_at = Column(DateTime, default=utcnow)


class State(Base):
    __tablename__ = "states"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    is_active = Column(Boolean, default=True, nullable=False)


class District(Base):
    __tablename__ = "districts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    state_id = Column(Integer, ForeignKey("states.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Mandal(Base):
    __tablename__ = "mandals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    district_id = Column(Integer, ForeignKey("districts.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class School(Base):
    __tablename__ = "schools"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)


class College(Base):
    __tablename__ = "colleges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

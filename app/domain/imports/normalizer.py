"""
Row-level cleansing that turns one canonicalized spreadsheet row into a
:class:`LeadRecord` ready for reconciliation and persistence.
"""
from dataclasses import dataclass, field
import datetime as _dt
import logging
import math
import re
from typing import Any, Dict, Mapping, Optional

from app.core.config import settings
from app.domain.imports.headers import canonicalize_row

logger = logging.getLogger(__name__)

NOT_SPECIFIED = "Not Specified"
ACADEMIC_YEAR_RANGE = (2000, 2100)

# Canonical field name -> LeadRecord attribute
FIELD_ATTRIBUTES = {
    "hallTicketNumber": "hall_ticket_number",
    "name": "name",
    "phone": "phone",
    "email": "email",
    "fatherName": "father_name",
    "fatherPhone": "father_phone",
    "motherName": "mother_name",
    "courseInterested": "course_interested",
    "village": "village",
    "district": "district",
    "mandal": "mandal",
    "state": "state",
    "gender": "gender",
    "rank": "rank",
    "interCollege": "inter_college",
    "quota": "quota",
    "applicationStatus": "application_status",
    "leadStatus": "lead_status",
    "source": "source",
    "notes": "notes",
    "academicYear": "academic_year",
    "studentGroup": "student_group",
    "schoolOrCollegeName": "school_or_college_name",
}

_GENDERS = {"m": "Male", "f": "Female", "o": "Other"}

# Exact (lower-cased, trimmed) spellings -> canonical student group.
# Bare "inter"/"intermediate" stay "Inter" on purpose: the stream is unknown
# and has to be picked by a counsellor.
STUDENT_GROUP_VARIANTS: Dict[str, str] = {}
for _canonical, _variants in (
    ("10th", ("10", "10th", "x", "xth", "ssc", "tenth", "10th class", "class 10", "class x", "ssc 10th", "s.s.c")),
    ("Inter-MPC", ("mpc", "inter mpc", "inter-mpc", "intermediate mpc", "intermediate-mpc", "mpc inter", "inter (mpc)", "12th mpc", "m.p.c")),
    ("Inter-BIPC", ("bipc", "bi.p.c", "bi.pc", "inter bipc", "inter-bipc", "intermediate bipc", "intermediate-bipc", "bipc inter", "inter (bipc)", "12th bipc")),
    ("Inter", ("inter", "intermediate", "inter 2nd year", "inter 1st year")),
    ("Degree", ("degree", "ug", "graduation", "graduate", "b.sc", "bsc", "b.com", "bcom", "ba", "b.a")),
    ("Diploma", ("diploma", "polytechnic", "poly", "polytechnic diploma")),
):
    for _variant in _variants:
        STUDENT_GROUP_VARIANTS[_variant] = _canonical
    STUDENT_GROUP_VARIANTS[_canonical.lower()] = _canonical

_DISTRICT_SUFFIX = re.compile(r"\s+(district|dist\.?|dt\.?)\s*$", re.IGNORECASE)
_MANDAL_SUFFIX = re.compile(r"\s+(mandalam|mandal)\s*$", re.IGNORECASE)


class RowValidationError(ValueError):
    """Raised when a row cannot become a lead (e.g. no phone number at all)."""


@dataclass
class LeadRecord:
    """Normalized lead candidate: fixed canonical fields plus an open overflow map."""
    name: str
    phone: str
    father_phone: str
    hall_ticket_number: str = ""
    email: Optional[str] = None
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    course_interested: Optional[str] = None
    village: Optional[str] = None
    district: Optional[str] = None
    mandal: Optional[str] = None
    state: Optional[str] = None
    gender: str = NOT_SPECIFIED
    rank: Optional[int] = None
    inter_college: Optional[str] = None
    quota: str = "Not Applicable"
    application_status: str = "Not Provided"
    lead_status: str = "New"
    source: Optional[str] = None
    notes: Optional[str] = None
    academic_year: int = 0
    student_group: str = NOT_SPECIFIED
    school_or_college_name: Optional[str] = None
    dynamic_fields: Dict[str, Any] = field(default_factory=dict)
    # Filled in downstream
    needs_manual_update: bool = False
    enquiry_number: Optional[str] = None
    upload_batch_id: Optional[str] = None
    uploaded_by: Optional[str] = None

    def dynamic_fields_or_none(self) -> Optional[Dict[str, Any]]:
        return dict(self.dynamic_fields) if self.dynamic_fields else None


def to_text(value: Any) -> Optional[str]:
    """Trimmed string form of a cell value, ``None`` when blank."""
    if value is None:
        return None
    if isinstance(value, bool):
        text = str(value)
    elif isinstance(value, float):
        if math.isnan(value):
            return None
        # Spreadsheets hand phone numbers back as 9876543210.0
        text = str(int(value)) if value.is_integer() else repr(value)
    elif isinstance(value, (_dt.datetime, _dt.date)):
        text = value.isoformat()
    else:
        text = str(value)
    text = text.strip()
    return text or None


def normalize_gender(value: Any) -> str:
    text = to_text(value)
    if text is None:
        return NOT_SPECIFIED
    return _GENDERS.get(text[0].lower(), text)


def coerce_rank(value: Any) -> Optional[int]:
    """Return an integer rank or raise ``ValueError`` for anything non-numeric."""
    text = to_text(value)
    if text is None:
        return None
    number = float(text.replace(",", ""))
    if math.isnan(number) or math.isinf(number) or number < 0 or not number.is_integer():
        raise ValueError(f"Rank '{text}' is not a whole number")
    return int(number)


def parse_academic_year(value: Any, default: Optional[int] = None) -> int:
    fallback = settings.default_academic_year if default is None else default
    text = to_text(value)
    if text is None:
        return fallback
    try:
        number = float(text)
    except ValueError:
        return fallback
    if not math.isfinite(number):
        return fallback
    year = int(number)
    low, high = ACADEMIC_YEAR_RANGE
    return year if low <= year <= high else fallback


def normalize_student_group(value: Any) -> str:
    text = to_text(value)
    if text is None:
        return NOT_SPECIFIED
    return STUDENT_GROUP_VARIANTS.get(text.lower(), text)


def strip_district_suffix(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return _DISTRICT_SUFFIX.sub("", value).strip() or value


def strip_mandal_suffix(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return _MANDAL_SUFFIX.sub("", value).strip() or value


def district_match_key(value: Optional[str]) -> str:
    """Suffix-stripped, case-folded district name used for master-data lookups."""
    return (strip_district_suffix(value) or "").strip().casefold()


def mandal_match_key(value: Optional[str]) -> str:
    return (strip_mandal_suffix(value) or "").strip().casefold()


def is_blank_row(raw_row: Mapping[str, Any]) -> bool:
    return all(to_text(value) is None for value in raw_row.values())


def should_skip_row(fields: Mapping[str, Any], dynamic_fields: Mapping[str, Any]) -> bool:
    """
    Rows without a name, and rows whose only populated cell is the name, are
    excluded from the import entirely (neither processed nor errors).
    """
    if to_text(fields.get("name")) is None:
        return True
    others = [value for key, value in fields.items() if key != "name" and to_text(value) is not None]
    return not others and not any(to_text(value) is not None for value in dynamic_fields.values())


def build_lead_record(
    fields: Mapping[str, Any],
    dynamic_fields: Optional[Mapping[str, Any]] = None,
    *,
    default_source: Optional[str] = None,
) -> LeadRecord:
    """
    Normalize canonical ``fields`` into a :class:`LeadRecord`.

    Raises:
        RowValidationError: if the row has neither a phone nor a father phone.
    """
    values: Dict[str, Optional[str]] = {
        attribute: to_text(fields.get(canonical))
        for canonical, attribute in FIELD_ATTRIBUTES.items()
        if canonical not in {"rank", "academicYear", "studentGroup", "gender"}
    }
    overflow: Dict[str, Any] = dict(dynamic_fields or {})

    name = values.pop("name")
    if name is None:
        raise RowValidationError("Missing required field: name")

    if values.get("mandal") is None and values.get("village") is not None:
        values["mandal"] = values["village"]

    rank: Optional[int] = None
    if to_text(fields.get("rank")) is not None:
        try:
            rank = coerce_rank(fields.get("rank"))
        except ValueError:
            overflow["Rank"] = to_text(fields.get("rank"))

    phone = values.pop("phone")
    father_phone = values.pop("father_phone")
    if phone is None and father_phone is None:
        raise RowValidationError("Missing required field: phone or father phone")
    # Both columns are NOT NULL in the lead schema.
    phone = phone or father_phone
    father_phone = father_phone or phone

    email = values.pop("email")
    source = values.pop("source") or default_source

    record = LeadRecord(
        name=name,
        phone=phone,
        father_phone=father_phone,
        email=email.lower() if email else None,
        gender=normalize_gender(fields.get("gender")),
        rank=rank,
        academic_year=parse_academic_year(fields.get("academicYear")),
        student_group=normalize_student_group(fields.get("studentGroup")),
        source=source,
        hall_ticket_number=values.pop("hall_ticket_number") or "",
        quota=values.pop("quota") or "Not Applicable",
        application_status=values.pop("application_status") or "Not Provided",
        lead_status=values.pop("lead_status") or "New",
        **values,
    )
    record.district = strip_district_suffix(record.district)
    record.mandal = strip_mandal_suffix(record.mandal)

    cleaned = {}
    for key, value in overflow.items():
        text = to_text(value)
        if text is not None:
            cleaned[str(key)] = text
    record.dynamic_fields = cleaned
    return record


def normalize_row(raw_row: Mapping[str, Any], *, default_source: Optional[str] = None) -> Optional[LeadRecord]:
    """
    Canonicalize and normalize one raw row.

    Returns ``None`` for rows that are skipped silently and raises
    :class:`RowValidationError` for rows that count as errors.
    """
    fields, dynamic_fields = canonicalize_row(raw_row)
    if should_skip_row(fields, dynamic_fields):
        return None
    return build_lead_record(fields, dynamic_fields, default_source=default_source)

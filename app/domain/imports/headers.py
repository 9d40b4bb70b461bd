"""
Canonicalization of spreadsheet column headers onto the fixed lead field set.

Headers are normalized (lower-cased, punctuation collapsed to single spaces)
and looked up in an alias table built once at import time. Headers that do
not resolve are kept verbatim so their values can be routed into the
record's ``dynamicFields`` bag instead of being dropped.
"""
import re
from typing import Any, Dict, Mapping, Optional, Tuple

CANONICAL_FIELDS = (
    "hallTicketNumber",
    "name",
    "phone",
    "email",
    "fatherName",
    "fatherPhone",
    "motherName",
    "courseInterested",
    "village",
    "district",
    "mandal",
    "state",
    "gender",
    "rank",
    "interCollege",
    "quota",
    "applicationStatus",
    "leadStatus",
    "source",
    "notes",
    "academicYear",
    "studentGroup",
    "schoolOrCollegeName",
    "dynamicFields",
)

CANONICAL_FIELD_SET = frozenset(CANONICAL_FIELDS)

_ALIAS_PAIRS = (
    # name
    ("candidate name", "name"),
    ("candidate", "name"),
    ("student", "name"),
    ("student name", "name"),
    ("studentname", "name"),
    ("student full name", "name"),
    ("name of the student", "name"),
    ("full name", "name"),
    # phone
    ("contact", "phone"),
    ("contact number", "phone"),
    ("contact no", "phone"),
    ("contact no 1", "phone"),
    ("contact number 1", "phone"),
    ("contact1", "phone"),
    ("contact 1", "phone"),
    ("contact no1", "phone"),
    ("contact number1", "phone"),
    ("mobile", "phone"),
    ("mobile number", "phone"),
    ("mobile no", "phone"),
    ("phone number", "phone"),
    ("phone no", "phone"),
    ("phone no 1", "phone"),
    ("primary phone", "phone"),
    ("phone1", "phone"),
    ("phone 1", "phone"),
    ("student phone", "phone"),
    ("student mobile", "phone"),
    # father / parent phone
    ("parent phone", "fatherPhone"),
    ("parent contact", "fatherPhone"),
    ("parent phone number", "fatherPhone"),
    ("parent contact number", "fatherPhone"),
    ("parent mobile", "fatherPhone"),
    ("parent mobile number", "fatherPhone"),
    ("contact2", "fatherPhone"),
    ("contact 2", "fatherPhone"),
    ("contact no 2", "fatherPhone"),
    ("contact number 2", "fatherPhone"),
    ("contact no2", "fatherPhone"),
    ("contact number2", "fatherPhone"),
    ("phone2", "fatherPhone"),
    ("phone 2", "fatherPhone"),
    ("phone no 2", "fatherPhone"),
    ("mobile2", "fatherPhone"),
    ("mobile 2", "fatherPhone"),
    ("secondary phone", "fatherPhone"),
    ("secondary contact", "fatherPhone"),
    ("father contact", "fatherPhone"),
    ("father contact number", "fatherPhone"),
    ("father mobile", "fatherPhone"),
    ("father mobile number", "fatherPhone"),
    ("father number", "fatherPhone"),
    ("father phone", "fatherPhone"),
    ("father phone number", "fatherPhone"),
    ("father s phone", "fatherPhone"),
    ("father s mobile", "fatherPhone"),
    ("father s contact", "fatherPhone"),
    ("fathers phone", "fatherPhone"),
    ("fathers mobile", "fatherPhone"),
    # parents
    ("father", "fatherName"),
    ("father name", "fatherName"),
    ("fathers name", "fatherName"),
    ("father s name", "fatherName"),
    ("fathername", "fatherName"),
    ("fname", "fatherName"),
    ("guardian name", "fatherName"),
    ("mother", "motherName"),
    ("mother name", "motherName"),
    ("mothers name", "motherName"),
    ("mother s name", "motherName"),
    ("mothername", "motherName"),
    ("mname", "motherName"),
    # hall ticket / rank / status
    ("hallticket", "hallTicketNumber"),
    ("hallticket number", "hallTicketNumber"),
    ("hall ticket", "hallTicketNumber"),
    ("hall ticket number", "hallTicketNumber"),
    ("hall ticket no", "hallTicketNumber"),
    ("hallticket no", "hallTicketNumber"),
    ("htno", "hallTicketNumber"),
    ("ht no", "hallTicketNumber"),
    ("h t no", "hallTicketNumber"),
    ("h t number", "hallTicketNumber"),
    ("eamcet hallticket", "hallTicketNumber"),
    ("eamcet hall ticket", "hallTicketNumber"),
    ("eamcet rank", "rank"),
    ("rank obtained", "rank"),
    ("eamcet rank obtained", "rank"),
    ("eamcet qualification", "applicationStatus"),
    ("eamcet status", "applicationStatus"),
    ("exam status", "applicationStatus"),
    ("status", "applicationStatus"),
    ("lead status", "leadStatus"),
    ("current status", "leadStatus"),
    ("present status", "leadStatus"),
    # course / college
    ("course", "courseInterested"),
    ("course interested", "courseInterested"),
    ("course preference", "courseInterested"),
    ("preference", "courseInterested"),
    ("inter college", "interCollege"),
    ("college studied", "interCollege"),
    ("college name", "interCollege"),
    # geography
    ("village town", "village"),
    ("village name", "village"),
    ("town", "village"),
    ("city", "village"),
    ("mandal town", "mandal"),
    ("mandal name", "mandal"),
    ("mandalam", "mandal"),
    ("district name", "district"),
    ("dist", "district"),
    ("state name", "state"),
    # misc
    ("sex", "gender"),
    ("category", "quota"),
    ("caste", "quota"),
    ("remarks", "notes"),
    ("comments", "notes"),
    ("comment", "notes"),
    ("lead source", "source"),
    ("academic year", "academicYear"),
    ("year", "academicYear"),
    ("admission year", "academicYear"),
    ("student group", "studentGroup"),
    ("group", "studentGroup"),
    ("stream", "studentGroup"),
    ("class", "studentGroup"),
    ("qualification", "studentGroup"),
    ("school", "schoolOrCollegeName"),
    ("school name", "schoolOrCollegeName"),
    ("school or college", "schoolOrCollegeName"),
    ("school college name", "schoolOrCollegeName"),
    ("school or college name", "schoolOrCollegeName"),
    ("institution", "schoolOrCollegeName"),
    ("institution name", "schoolOrCollegeName"),
    ("email id", "email"),
    ("email address", "email"),
    ("mail id", "email"),
    ("e mail", "email"),
)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z])(?=[A-Z])")


def normalize_header(value: Any) -> str:
    """Lower-case, replace every run of non-alphanumerics with one space, trim."""
    if value is None:
        return ""
    return _NON_ALNUM.sub(" ", str(value).strip().lower()).strip()


def _build_alias_map() -> Dict[str, str]:
    aliases: Dict[str, str] = {}
    for alias, canonical in _ALIAS_PAIRS:
        aliases[normalize_header(alias)] = canonical
    # Every canonical field resolves to itself, written either way ("fatherPhone", "Father Phone").
    for field in CANONICAL_FIELDS:
        aliases.setdefault(normalize_header(field), field)
        aliases.setdefault(normalize_header(_CAMEL_BOUNDARY.sub(" ", field)), field)
    return aliases


ALIAS_MAP: Mapping[str, str] = _build_alias_map()


def resolve_canonical_field(header: Any) -> Optional[str]:
    """Return the canonical field a header maps to, or ``None`` if it is unrecognized."""
    return ALIAS_MAP.get(normalize_header(header))


def canonicalize_header(header: Any) -> str:
    """Return the canonical field for ``header`` or the trimmed header itself."""
    canonical = resolve_canonical_field(header)
    if canonical is not None:
        return canonical
    return "" if header is None else str(header).strip()


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def canonicalize_row(raw_row: Mapping[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Split a raw ``header -> value`` row into canonical fields and overflow.

    Returns ``(fields, dynamic_fields)``. Blank cells are ignored. When two
    headers resolve to the same canonical field, the first non-blank value is
    kept and later ones land in ``dynamic_fields`` under their original header,
    so no populated column is ever discarded.
    """
    fields: Dict[str, Any] = {}
    dynamic_fields: Dict[str, Any] = {}

    for header, value in raw_row.items():
        key = "" if header is None else str(header).strip()
        if not key:
            continue
        if key == "dynamicFields" and isinstance(value, Mapping):
            dynamic_fields.update(value)
            continue
        if _is_blank(value):
            continue

        canonical = resolve_canonical_field(key)
        if canonical is None or canonical == "dynamicFields":
            dynamic_fields[key] = value
        elif canonical in fields:
            dynamic_fields[key] = value
        else:
            fields[canonical] = value

    return fields, dynamic_fields

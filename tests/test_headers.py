from app.domain.imports.headers import (
    CANONICAL_FIELDS,
    canonicalize_header,
    canonicalize_row,
    normalize_header,
    resolve_canonical_field,
)


def test_normalize_header_collapses_punctuation_and_case():
    assert normalize_header("  Father's   Phone No. ") == "father s phone no"
    assert normalize_header("Student_Name") == "student name"
    assert normalize_header(None) == ""


def test_father_contact_maps_to_father_phone():
    assert canonicalize_header("Father Contact") == "fatherPhone"
    assert canonicalize_header("FATHER CONTACT") == "fatherPhone"


def test_common_aliases_resolve():
    assert resolve_canonical_field("Student Name") == "name"
    assert resolve_canonical_field("Mobile Number") == "phone"
    assert resolve_canonical_field("Hall Ticket No") == "hallTicketNumber"
    assert resolve_canonical_field("Mandalam") == "mandal"


def test_every_canonical_field_resolves_to_itself():
    for field in CANONICAL_FIELDS:
        assert resolve_canonical_field(field) == field


def test_spaced_form_of_canonical_field_resolves():
    assert resolve_canonical_field("Application Status") == "applicationStatus"
    assert resolve_canonical_field("Lead Status") == "leadStatus"


def test_unknown_header_is_kept_verbatim():
    assert resolve_canonical_field("WhatsApp") is None
    assert canonicalize_header("  WhatsApp ") == "WhatsApp"


def test_unrecognized_header_lands_in_dynamic_fields():
    fields, dynamic = canonicalize_row({
        "Student Name": "Ravi",
        "Father Contact": "9000000001",
        "WhatsApp": "9999999999",
    })

    assert fields == {"name": "Ravi", "fatherPhone": "9000000001"}
    assert dynamic == {"WhatsApp": "9999999999"}


def test_blank_cells_are_ignored():
    fields, dynamic = canonicalize_row({"Name": "Ravi", "Phone": "  ", "Notes": None, "Extra": ""})

    assert fields == {"name": "Ravi"}
    assert dynamic == {}


def test_second_column_for_same_field_goes_to_dynamic_fields():
    fields, dynamic = canonicalize_row({
        "Mobile": "",
        "Phone": "9876543210",
        "Contact Number": "9123456789",
    })

    assert fields["phone"] == "9876543210"
    assert dynamic == {"Contact Number": "9123456789"}

"""
Reconciliation of free-text lead geography against the master gazetteer.

A :class:`MasterDataLookup` is loaded once per import job and treated as
read-only for the rest of that job. Every name is registered under its
case-folded raw form and its suffix-stripped form ("Kakinada District" and
"Kakinada" both resolve).
"""
from dataclasses import dataclass, field
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.db.models import College, District, Mandal, School, State
from app.domain.imports.normalizer import (
    LeadRecord,
    district_match_key,
    mandal_match_key,
)
from app.domain.imports.similarity import find_best_match

logger = logging.getLogger(__name__)

GEOGRAPHY_MATCH_THRESHOLD = 0.80
INSTITUTION_MATCH_THRESHOLD = 0.85
UNMATCHED_INSTITUTION_KEY = "Unmatched School/College"


@dataclass
class MasterDataLookup:
    """Case-folded name -> id maps, in master-data primary-key order."""
    states: Dict[str, int] = field(default_factory=dict)
    districts_by_state: Dict[int, Dict[str, int]] = field(default_factory=dict)
    mandals_by_district: Dict[int, Dict[str, int]] = field(default_factory=dict)
    schools: Dict[str, int] = field(default_factory=dict)
    colleges: Dict[str, int] = field(default_factory=dict)


def _register(index: Dict[str, int], key: str, record_id: int) -> None:
    # First registration wins so the earliest primary key stays the tie-break.
    if key and key not in index:
        index[key] = record_id


def load_master_data(db: Session) -> MasterDataLookup:
    """Load every active state, district, mandal, school and college."""
    lookup = MasterDataLookup()

    for state in db.query(State).filter(State.is_active.is_(True)).order_by(State.id):
        _register(lookup.states, state.name.strip().casefold(), state.id)

    for district in db.query(District).filter(District.is_active.is_(True)).order_by(District.id):
        index = lookup.districts_by_state.setdefault(district.state_id, {})
        _register(index, district.name.strip().casefold(), district.id)
        _register(index, district_match_key(district.name), district.id)

    for mandal in db.query(Mandal).filter(Mandal.is_active.is_(True)).order_by(Mandal.id):
        index = lookup.mandals_by_district.setdefault(mandal.district_id, {})
        _register(index, mandal.name.strip().casefold(), mandal.id)
        _register(index, mandal_match_key(mandal.name), mandal.id)

    for school in db.query(School).filter(School.is_active.is_(True)).order_by(School.id):
        _register(lookup.schools, school.name.strip().casefold(), school.id)

    for college in db.query(College).filter(College.is_active.is_(True)).order_by(College.id):
        _register(lookup.colleges, college.name.strip().casefold(), college.id)

    logger.info(
        "Loaded master data: %d states, %d districts, %d mandals, %d schools, %d colleges",
        len(lookup.states),
        sum(len(v) for v in lookup.districts_by_state.values()),
        sum(len(v) for v in lookup.mandals_by_district.values()),
        len(lookup.schools),
        len(lookup.colleges),
    )
    return lookup


def _resolve(key: str, index: Dict[str, int], threshold: float = GEOGRAPHY_MATCH_THRESHOLD) -> Optional[int]:
    if not key or not index:
        return None
    if key in index:
        return index[key]
    best = find_best_match(key, index.keys(), threshold)
    return index[best] if best is not None else None


def check_needs_manual_update(record: LeadRecord, lookup: Optional[MasterDataLookup]) -> bool:
    """
    Return True when the record's state, district or mandal cannot be resolved.

    Resolution runs state -> district (scoped to the state) -> mandal (scoped to
    the district) and stops at the first failure. A missing lookup (master data
    failed to load) flags every record.
    """
    if lookup is None:
        return True

    state_key = (record.state or "").strip().casefold()
    state_id = _resolve(state_key, lookup.states)
    if state_id is None:
        return True

    district_id = _resolve(district_match_key(record.district), lookup.districts_by_state.get(state_id, {}))
    if district_id is None:
        return True

    mandal_id = _resolve(mandal_match_key(record.mandal), lookup.mandals_by_district.get(district_id, {}))
    return mandal_id is None


def institution_is_known(name: Optional[str], lookup: MasterDataLookup) -> bool:
    key = (name or "").strip().casefold()
    if not key:
        return True
    for index in (lookup.schools, lookup.colleges):
        if _resolve(key, index, INSTITUTION_MATCH_THRESHOLD) is not None:
            return True
    return False


def reconcile_record(record: LeadRecord, lookup: Optional[MasterDataLookup]) -> LeadRecord:
    """
    Set ``needs_manual_update`` on ``record`` and note an unknown school/college
    in its dynamic fields. Institution mismatches never set the flag.
    """
    record.needs_manual_update = check_needs_manual_update(record, lookup)
    if lookup is not None and not institution_is_known(record.school_or_college_name, lookup):
        record.dynamic_fields[UNMATCHED_INSTITUTION_KEY] = record.school_or_college_name
    return record

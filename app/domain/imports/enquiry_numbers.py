"""
Year-scoped enquiry number allocation (``ENQ<YY><NNNNNN>``).

The sequence is seeded from the highest number already stored for the
current year and then advanced in memory for the life of one import job.
This is only safe while a single import runs at a time.
"""
from datetime import datetime
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.db.models import Lead

logger = logging.getLogger(__name__)

ENQUIRY_PREFIX = "ENQ"
SEQUENCE_WIDTH = 6


def enquiry_prefix(now: Optional[datetime] = None) -> str:
    year = (now or datetime.now()).year
    return f"{ENQUIRY_PREFIX}{year % 100:02d}"


def parse_sequence(enquiry_number: Optional[str], prefix: str) -> Optional[int]:
    if not enquiry_number or not enquiry_number.startswith(prefix):
        return None
    try:
        return int(enquiry_number[len(prefix):])
    except ValueError:
        return None


class EnquiryNumberGenerator:
    """Hands out consecutive enquiry numbers for one job."""

    def __init__(self, prefix: str, next_sequence: int = 1):
        self.prefix = prefix
        self._next = max(1, next_sequence)

    @classmethod
    def resume(cls, db: Session, now: Optional[datetime] = None) -> "EnquiryNumberGenerator":
        """Continue after the highest stored enquiry number for the current year."""
        prefix = enquiry_prefix(now)
        last = (
            db.query(Lead.enquiry_number)
            .filter(Lead.enquiry_number.like(f"{prefix}%"))
            # past 999999 the sequence grows a digit, so longer numbers sort higher
            .order_by(func.length(Lead.enquiry_number).desc(), Lead.enquiry_number.desc())
            .limit(1)
            .scalar()
        )
        last_sequence = parse_sequence(last, prefix)
        next_sequence = (last_sequence or 0) + 1
        logger.info("Enquiry numbers for %s resume at %d (last stored: %s)", prefix, next_sequence, last)
        return cls(prefix, next_sequence)

    @property
    def next_sequence(self) -> int:
        return self._next

    def next(self) -> str:
        value = f"{self.prefix}{self._next:0{SEQUENCE_WIDTH}d}"
        self._next += 1
        return value

"""
Case Number Generation
======================

Human-readable case numbers of the form PREFIX-YYYY-NNNNNN, sequential within
a calendar year. The per-year counter row is incremented with a single
UPDATE so concurrent creators never read the same value; the unique
constraint on cases.case_number remains the final guard.
"""

import logging
import re
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import CaseNumberSequence
from .db.session import get_db_session

logger = logging.getLogger(__name__)

SEQUENCE_DIGITS = 6
CASE_NUMBER_RE = re.compile(r"^(?P<prefix>[A-Z]+)-(?P<year>\d{4})-(?P<seq>\d{6})$")


def format_case_number(prefix: str, year: int, sequence: int) -> str:
    if sequence < 1 or sequence >= 10 ** SEQUENCE_DIGITS:
        raise ValueError(f"Case sequence {sequence} out of range for year {year}")
    return f"{prefix}-{year:04d}-{sequence:0{SEQUENCE_DIGITS}d}"


def parse_case_number(case_number: str) -> Optional[Tuple[str, int, int]]:
    """Split a case number into (prefix, year, sequence), or None if malformed"""
    match = CASE_NUMBER_RE.match(case_number or "")
    if not match:
        return None
    return match.group("prefix"), int(match.group("year")), int(match.group("seq"))


def next_case_number(db: Session, year: Optional[int] = None, prefix: Optional[str] = None) -> str:
    """
    Reserve the next case number for a year.

    Runs inside the caller's transaction: the reservation is released if the
    caller rolls back. A concurrent first-of-year insert surfaces as an
    IntegrityError, which the caller retries.
    """
    year = year or datetime.utcnow().year
    prefix = prefix or get_settings().case_number_prefix

    updated = (
        db.query(CaseNumberSequence)
        .filter(CaseNumberSequence.year == year)
        .update(
            {CaseNumberSequence.last_value: CaseNumberSequence.last_value + 1},
            synchronize_session=False,
        )
    )
    if not updated:
        db.add(CaseNumberSequence(year=year, last_value=1))
        db.flush()
        sequence = 1
        logger.info(f"Started case number sequence for {year}")
    else:
        sequence = (
            db.query(CaseNumberSequence.last_value)
            .filter(CaseNumberSequence.year == year)
            .scalar()
        )

    return format_case_number(prefix, year, sequence)


def reserve_case_number(year: Optional[int] = None, prefix: Optional[str] = None) -> str:
    """
    Reserve the next case number in its own committed transaction.

    A case insert that later fails leaves a gap instead of handing the same
    number to the retry.
    """
    with get_db_session() as db:
        return next_case_number(db, year=year, prefix=prefix)

"""Hierarchical bottle identifier allocation.

Every chemical gets one parent id (``CHEM0001``) the first time bottles are
created for it; its bottles are then numbered ``CHEM0001-1``, ``CHEM0001-2``
and so on. The parent number is zero-padded to four digits, the child number
is not. Both formats are user-visible and must stay as they are.

State lives in two tables:

* ``id_counters``: one row per prefix holding the last minted parent number.
* ``parent_counters``: one row per chemical holding its parent id and the
  next child number to hand out.

``allocate`` only flushes. The caller owns the transaction and must commit
the bottle rows together with the counter advance, or roll both back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from . import models
from .errors import InvalidArgument, NotFound

logger = logging.getLogger(__name__)

PARENT_PREFIX = "CHEM"
PARENT_DIGITS = 4


@dataclass(frozen=True)
class Assignment:
    bottle_id: str
    child_number: int


@dataclass(frozen=True)
class Allocation:
    parent_id: str
    assignments: list[Assignment] = field(default_factory=list)

    @property
    def start(self) -> int:
        return self.assignments[0].child_number


def format_parent_id(number: int, prefix: str = PARENT_PREFIX) -> str:
    return f"{prefix}{number:0{PARENT_DIGITS}d}"


def format_bottle_id(parent_id: str, child_number: int) -> str:
    return f"{parent_id}-{child_number}"


def build_assignments(parent_id: str, start: int, quantity: int) -> list[Assignment]:
    return [
        Assignment(bottle_id=format_bottle_id(parent_id, n), child_number=n)
        for n in range(start, start + quantity)
    ]


def ensure_id_counter(db: Session, prefix: str = PARENT_PREFIX) -> models.IdCounter:
    counter = db.get(models.IdCounter, prefix)
    if counter is None:
        counter = models.IdCounter(prefix=prefix, current_number=0)
        db.add(counter)
        db.flush()
    return counter


def mint_parent_id(db: Session, prefix: str = PARENT_PREFIX) -> str:
    """Consume one tick of the global sequence and return the new parent id."""
    stmt = (
        update(models.IdCounter)
        .where(models.IdCounter.prefix == prefix)
        .values(current_number=models.IdCounter.current_number + 1)
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount == 0:
        ensure_id_counter(db, prefix)
        db.execute(stmt)
    number = db.execute(
        select(models.IdCounter.current_number).where(models.IdCounter.prefix == prefix)
    ).scalar_one()
    return format_parent_id(number, prefix)


def _advance_existing(db: Session, chemical_id: int, quantity: int) -> Allocation | None:
    # Conditional read-increment-write. The UPDATE takes the write lock before
    # anything is read, so two batches for one chemical can never overlap.
    stmt = (
        update(models.ParentCounter)
        .where(models.ParentCounter.chemical_id == chemical_id)
        .values(next_child_number=models.ParentCounter.next_child_number + quantity)
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount == 0:
        return None
    parent_id, next_child = db.execute(
        select(models.ParentCounter.parent_id, models.ParentCounter.next_child_number)
        .where(models.ParentCounter.chemical_id == chemical_id)
    ).one()
    start = next_child - quantity
    return Allocation(parent_id, build_assignments(parent_id, start, quantity))


def _recover_from_bottles(db: Session, chemical_id: int) -> tuple[str, int] | None:
    """Rebuild (parent_id, high-water mark) from existing bottle rows.

    Only used when a chemical has bottles but no counter row, e.g. after a
    manual data repair.
    """
    row = (
        db.query(models.Bottle.parent_id, func.max(models.Bottle.child_number))
        .filter(models.Bottle.chemical_id == chemical_id)
        .group_by(models.Bottle.parent_id)
        .order_by(func.max(models.Bottle.child_number).desc())
        .first()
    )
    if row is None:
        return None
    return row[0], row[1]


def allocate(db: Session, chemical_id: int, quantity: int) -> Allocation:
    """Reserve ``quantity`` consecutive bottle ids for a chemical."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidArgument(
            "numberOfBottles must be a positive integer",
            code="bottle.invalid_quantity",
        )

    # Row lock on PostgreSQL; SQLite drops FOR UPDATE and relies on its
    # database-wide write lock taken by the first UPDATE below.
    chemical = (
        db.query(models.Chemical)
        .filter(models.Chemical.id == chemical_id)
        .with_for_update()
        .first()
    )
    if chemical is None:
        raise NotFound("Chemical not found", code="chemical.not_found", chemicalId=chemical_id)

    allocation = _advance_existing(db, chemical_id, quantity)
    if allocation is not None:
        logger.info(
            "Allocated %s-%d..%d for chemical %d",
            allocation.parent_id, allocation.start, allocation.start + quantity - 1, chemical_id,
        )
        return allocation

    recovered = _recover_from_bottles(db, chemical_id)
    if recovered is not None:
        parent_id, high_water = recovered
        start = high_water + 1
        logger.warning(
            "No counter for chemical %d; resuming %s from existing bottles at %d",
            chemical_id, parent_id, start,
        )
    else:
        parent_id = mint_parent_id(db)
        start = 1

    db.add(
        models.ParentCounter(
            chemical_id=chemical_id,
            parent_id=parent_id,
            next_child_number=start + quantity,
        )
    )
    db.flush()
    logger.info(
        "Allocated %s-%d..%d for chemical %d", parent_id, start, start + quantity - 1, chemical_id
    )
    return Allocation(parent_id, build_assignments(parent_id, start, quantity))

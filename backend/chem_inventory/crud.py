import logging
import math
from datetime import date
from typing import Optional

from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from . import allocator, models, schemas
from .errors import Conflict, InvalidArgument, InventoryError, NotFound, PersistenceFailure

logger = logging.getLogger(__name__)


def _commit(db: Session, action: str) -> None:
    """Commit or roll back completely; storage errors become PersistenceFailure."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to %s", action)
        raise PersistenceFailure(f"Failed to {action}") from exc


def _eq_or_null(column, value):
    return column.is_(None) if value is None else column == value


def _contains(text: str) -> str:
    # Literal substring match: LIKE wildcards in user input are escaped
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def paginate(total: int, page: int, limit: int) -> schemas.Pagination:
    return schemas.Pagination(
        page=page, limit=limit, total=total, total_pages=math.ceil(total / limit) if limit else 0
    )


# --- Chemicals ---------------------------------------------------------------

def get_chemical(db: Session, chemical_id: int) -> models.Chemical:
    chemical = (
        db.query(models.Chemical)
        .options(selectinload(models.Chemical.bottles).selectinload(models.Bottle.location))
        .filter(models.Chemical.id == chemical_id)
        .first()
    )
    if chemical is None:
        raise NotFound("Chemical not found", code="chemical.not_found")
    return chemical


def get_chemical_by_cas(db: Session, cas_number: str) -> Optional[models.Chemical]:
    return db.query(models.Chemical).filter(models.Chemical.cas_number == cas_number).first()


def bottle_counts(db: Session, chemical_ids: list[int]) -> dict[int, tuple[int, int]]:
    """Map chemical id -> (active bottles, total bottles)."""
    if not chemical_ids:
        return {}
    rows = (
        db.query(
            models.Bottle.chemical_id,
            func.sum(case((models.Bottle.status == "active", 1), else_=0)),
            func.count(models.Bottle.id),
        )
        .filter(models.Bottle.chemical_id.in_(chemical_ids))
        .group_by(models.Bottle.chemical_id)
        .all()
    )
    return {chemical_id: (int(active or 0), int(total)) for chemical_id, active, total in rows}


def list_chemicals(db: Session, search: Optional[str] = None, page: int = 1, limit: int = 50):
    q = db.query(models.Chemical)
    if search:
        pattern = _contains(search)
        q = q.filter(
            or_(
                models.Chemical.name.ilike(pattern, escape="\\"),
                models.Chemical.cas_number.ilike(pattern, escape="\\"),
                models.Chemical.formula.ilike(pattern, escape="\\"),
            )
        )
    total = q.count()
    chemicals = q.order_by(models.Chemical.name.asc()).offset((page - 1) * limit).limit(limit).all()
    counts = bottle_counts(db, [c.id for c in chemicals])
    return chemicals, counts, paginate(total, page, limit)


def _ensure_unique_cas(db: Session, cas_number: Optional[str], exclude_id: Optional[int] = None) -> None:
    if not cas_number:
        return
    existing = get_chemical_by_cas(db, cas_number)
    if existing is not None and existing.id != exclude_id:
        raise Conflict(
            "Chemical with this CAS number already exists",
            code="chemical.duplicate_cas",
            status_code=400,
            existingId=existing.id,
        )


def create_chemical(db: Session, chemical: schemas.ChemicalCreate) -> models.Chemical:
    _ensure_unique_cas(db, chemical.cas_number)
    db_chemical = models.Chemical(**chemical.model_dump())
    db.add(db_chemical)
    try:
        db.flush()
    except IntegrityError as exc:
        # Lost a race with another insert of the same CAS number
        db.rollback()
        _ensure_unique_cas(db, chemical.cas_number)
        logger.exception("Failed to create chemical %r", chemical.name)
        raise PersistenceFailure("Failed to create chemical") from exc
    _commit(db, "create chemical")
    db.refresh(db_chemical)
    logger.info("Created chemical %d (%s)", db_chemical.id, db_chemical.name)
    return db_chemical


def update_chemical(db: Session, chemical_id: int, payload: schemas.ChemicalUpdate) -> models.Chemical:
    chemical = get_chemical(db, chemical_id)
    data = payload.model_dump(exclude_unset=True)
    if "name" in data and not data["name"]:
        raise InvalidArgument("Chemical name is required", code="chemical.name_required")
    if "cas_number" in data:
        _ensure_unique_cas(db, data["cas_number"], exclude_id=chemical.id)
    for key, value in data.items():
        setattr(chemical, key, value)
    _commit(db, "update chemical")
    db.refresh(chemical)
    return chemical


def delete_chemical(db: Session, chemical_id: int) -> None:
    chemical = get_chemical(db, chemical_id)
    bottle_count = db.query(models.Bottle).filter(models.Bottle.chemical_id == chemical.id).count()
    if bottle_count > 0:
        raise Conflict(
            "Cannot delete chemical with bottles. Delete its bottles first.",
            code="chemical.has_bottles",
            status_code=400,
            bottleCount=bottle_count,
        )
    # The parent id is retired with the chemical; the global counter is never rewound
    db.query(models.ParentCounter).filter(models.ParentCounter.chemical_id == chemical.id).delete(
        synchronize_session=False
    )
    db.delete(chemical)
    _commit(db, "delete chemical")
    logger.info("Deleted chemical %d", chemical_id)


# --- Locations ---------------------------------------------------------------

def get_location(db: Session, location_id: int) -> models.Location:
    location = db.get(models.Location, location_id)
    if location is None:
        raise NotFound("Location not found", code="location.not_found")
    return location


def active_bottles_at(db: Session, location_id: int) -> list[models.Bottle]:
    return (
        db.query(models.Bottle)
        .options(selectinload(models.Bottle.chemical))
        .filter(models.Bottle.location_id == location_id, models.Bottle.status == "active")
        .order_by(models.Bottle.parent_id.asc(), models.Bottle.child_number.asc())
        .all()
    )


def list_locations(db: Session):
    rows = (
        db.query(models.Location, func.count(models.Bottle.id))
        .outerjoin(models.Bottle, models.Bottle.location_id == models.Location.id)
        .group_by(models.Location.id)
        .order_by(models.Location.building.asc(), models.Location.room.asc(), models.Location.name.asc())
        .all()
    )
    return [(location, int(count)) for location, count in rows]


def _ensure_unique_location(db: Session, name, room, building, exclude_id: Optional[int] = None) -> None:
    q = db.query(models.Location).filter(
        models.Location.name == name,
        _eq_or_null(models.Location.room, room),
        _eq_or_null(models.Location.building, building),
    )
    if exclude_id is not None:
        q = q.filter(models.Location.id != exclude_id)
    existing = q.first()
    if existing is not None:
        raise Conflict(
            "A location with this name already exists in this room/building",
            code="location.duplicate_name",
            existingId=existing.id,
        )


def _flush_location(db: Session) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict(
            "A location with this name already exists in this room/building",
            code="location.duplicate_name",
        ) from exc


def create_location(db: Session, payload: schemas.LocationCreate) -> models.Location:
    _ensure_unique_location(db, payload.name, payload.room, payload.building)
    location = models.Location(**payload.model_dump())
    db.add(location)
    _flush_location(db)
    _commit(db, "create location")
    db.refresh(location)
    return location


def update_location(db: Session, location_id: int, payload: schemas.LocationUpdate) -> models.Location:
    location = get_location(db, location_id)
    data = payload.model_dump(exclude_unset=True)
    if "name" in data and not data["name"]:
        raise InvalidArgument("Location name is required", code="location.name_required")
    if {"name", "room", "building"} & data.keys():
        _ensure_unique_location(
            db,
            data.get("name", location.name),
            data.get("room", location.room),
            data.get("building", location.building),
            exclude_id=location.id,
        )
    for key, value in data.items():
        setattr(location, key, value)
    _flush_location(db)
    _commit(db, "update location")
    db.refresh(location)
    return location


def delete_location(db: Session, location_id: int) -> None:
    location = get_location(db, location_id)
    bottle_count = db.query(models.Bottle).filter(models.Bottle.location_id == location.id).count()
    if bottle_count > 0:
        raise Conflict(
            "Cannot delete location with bottles. Move or delete bottles first.",
            code="location.has_bottles",
            status_code=400,
            bottleCount=bottle_count,
        )
    db.delete(location)
    _commit(db, "delete location")


# --- Bottles -----------------------------------------------------------------

def get_bottle(db: Session, bottle_id: int) -> models.Bottle:
    bottle = (
        db.query(models.Bottle)
        .options(selectinload(models.Bottle.chemical), selectinload(models.Bottle.location))
        .filter(models.Bottle.id == bottle_id)
        .first()
    )
    if bottle is None:
        raise NotFound("Bottle not found", code="bottle.not_found")
    return bottle


def list_bottles(
    db: Session,
    search: Optional[str] = None,
    chemical_id: Optional[int] = None,
    location_id: Optional[int] = None,
    status: Optional[str] = None,
    expired: bool = False,
    page: int = 1,
    limit: int = 50,
    today: Optional[date] = None,
):
    q = db.query(models.Bottle).join(models.Bottle.chemical)
    if search:
        pattern = _contains(search)
        q = q.filter(
            or_(
                models.Bottle.bottle_id.ilike(pattern, escape="\\"),
                models.Bottle.lot_number.ilike(pattern, escape="\\"),
                models.Chemical.name.ilike(pattern, escape="\\"),
                models.Chemical.cas_number.ilike(pattern, escape="\\"),
            )
        )
    if chemical_id is not None:
        q = q.filter(models.Bottle.chemical_id == chemical_id)
    if location_id is not None:
        q = q.filter(models.Bottle.location_id == location_id)
    if status:
        q = q.filter(models.Bottle.status == status)
    if expired:
        q = q.filter(
            models.Bottle.expiration_date < (today or date.today()),
            models.Bottle.status == "active",
        )
    total = q.count()
    bottles = (
        q.options(selectinload(models.Bottle.chemical), selectinload(models.Bottle.location))
        .order_by(models.Bottle.parent_id.asc(), models.Bottle.child_number.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return bottles, paginate(total, page, limit)


def create_bottles(db: Session, payload: schemas.BottleCreate):
    """Create a batch of bottles with freshly allocated ids, all or nothing."""
    fields = payload.model_dump(exclude={"chemical_id", "number_of_bottles"})
    try:
        if payload.location_id is not None:
            get_location(db, payload.location_id)
        allocation = allocator.allocate(db, payload.chemical_id, payload.number_of_bottles)
        bottles = [
            models.Bottle(
                bottle_id=assignment.bottle_id,
                parent_id=allocation.parent_id,
                child_number=assignment.child_number,
                chemical_id=payload.chemical_id,
                status="active",
                **fields,
            )
            for assignment in allocation.assignments
        ]
        db.add_all(bottles)
        db.flush()
        db.commit()
    except InventoryError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to create bottles for chemical %s", payload.chemical_id)
        raise PersistenceFailure("Failed to create bottles") from exc

    ids = [b.id for b in bottles]
    created = (
        db.query(models.Bottle)
        .options(selectinload(models.Bottle.chemical), selectinload(models.Bottle.location))
        .filter(models.Bottle.id.in_(ids))
        .order_by(models.Bottle.child_number.asc())
        .all()
    )
    return allocation, created


def update_bottle(db: Session, bottle_id: int, payload: schemas.BottleUpdate) -> models.Bottle:
    bottle = get_bottle(db, bottle_id)
    data = payload.model_dump(exclude_unset=True)
    if "status" in data and data["status"] is None:
        raise InvalidArgument("Bottle status cannot be cleared", code="bottle.invalid_status")
    if data.get("location_id") is not None:
        get_location(db, data["location_id"])
    for key, value in data.items():
        setattr(bottle, key, value)
    _commit(db, "update bottle")
    return get_bottle(db, bottle_id)


def delete_bottle(db: Session, bottle_id: int) -> None:
    bottle = get_bottle(db, bottle_id)
    db.delete(bottle)
    _commit(db, "delete bottle")


def bulk_update_status(db: Session, bottle_ids: list[int], status: str) -> int:
    if status not in models.BOTTLE_STATUSES:
        raise InvalidArgument(f"Unknown bottle status {status!r}", code="bottle.invalid_status")
    result = db.execute(
        update(models.Bottle)
        .where(models.Bottle.id.in_(bottle_ids))
        .values(status=status, updated_at=models.utcnow())
        .execution_options(synchronize_session=False)
    )
    _commit(db, "update bottle status")
    return result.rowcount


# --- Dashboard ---------------------------------------------------------------

def get_stats(db: Session, today: Optional[date] = None) -> schemas.Stats:
    today = today or date.today()
    return schemas.Stats(
        total_chemicals=db.query(models.Chemical).count(),
        total_bottles=db.query(models.Bottle).count(),
        active_bottles=db.query(models.Bottle).filter(models.Bottle.status == "active").count(),
        expired_bottles=db.query(models.Bottle)
        .filter(models.Bottle.expiration_date < today, models.Bottle.status == "active")
        .count(),
        total_locations=db.query(models.Location).count(),
    )

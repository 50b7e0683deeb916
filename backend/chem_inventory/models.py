from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base

BOTTLE_STATUSES = ("active", "empty", "disposed", "expired")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Chemical(Base):
    __tablename__ = "chemicals"

    id = Column(Integer, primary_key=True, index=True)
    cas_number = Column(String, unique=True, index=True, nullable=True)
    name = Column(String, nullable=False, index=True)
    formula = Column(String)
    molecular_weight = Column(Float)
    nfpa_health = Column(Integer)
    nfpa_fire = Column(Integer)
    nfpa_reactivity = Column(Integer)
    nfpa_special = Column(String)
    sds_url = Column(String)
    supplier = Column(String)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    bottles = relationship("Bottle", back_populates="chemical", order_by="Bottle.child_number")


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    room = Column(String)
    building = Column(String)
    storage_type = Column(String)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    bottles = relationship("Bottle", back_populates="location")

    __table_args__ = (
        UniqueConstraint("name", "room", "building", name="uq_location_name_room_building"),
    )


class Bottle(Base):
    __tablename__ = "bottles"

    id = Column(Integer, primary_key=True, index=True)
    bottle_id = Column(String, unique=True, nullable=False, index=True)
    parent_id = Column(String, nullable=False, index=True)
    child_number = Column(Integer, nullable=False)
    chemical_id = Column(Integer, ForeignKey("chemicals.id", ondelete="RESTRICT"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True, index=True)
    quantity = Column(Float)
    unit = Column(String)
    order_date = Column(Date)
    received_date = Column(Date)
    expiration_date = Column(Date)
    status = Column(String, nullable=False, default="active", index=True)
    lot_number = Column(String)
    po_number = Column(String)
    notes = Column(Text)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    chemical = relationship("Chemical", back_populates="bottles")
    location = relationship("Location", back_populates="bottles")

    __table_args__ = (
        UniqueConstraint("parent_id", "child_number", name="uq_bottle_parent_child"),
        CheckConstraint("child_number > 0", name="ck_bottle_child_positive"),
    )


class ParentCounter(Base):
    """Per-chemical allocator state: the parent id and the next child number to hand out."""

    __tablename__ = "parent_counters"

    chemical_id = Column(Integer, ForeignKey("chemicals.id", ondelete="CASCADE"), primary_key=True)
    parent_id = Column(String, unique=True, nullable=False)
    next_child_number = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class IdCounter(Base):
    """Global sequence feeding new parent ids. Never rewound."""

    __tablename__ = "id_counters"

    prefix = Column(String, primary_key=True)
    current_number = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<IdCounter {self.prefix}: {self.current_number}>"

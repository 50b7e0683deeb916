from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator
from pydantic.alias_generators import to_camel

BottleStatus = Literal["active", "empty", "disposed", "expired"]

NfpaRating = Optional[int]


# Base schema: camelCase on the wire, snake_case in Python, readable from ORM rows
class APIModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Pagination(APIModel):
    page: int
    limit: int
    total: int
    total_pages: int


# --- Chemicals ---------------------------------------------------------------

class ChemicalBase(APIModel):
    cas_number: Optional[str] = None
    name: str = Field(min_length=1)
    formula: Optional[str] = None
    molecular_weight: Optional[float] = Field(default=None, gt=0)
    nfpa_health: NfpaRating = Field(default=None, ge=0, le=4)
    nfpa_fire: NfpaRating = Field(default=None, ge=0, le=4)
    nfpa_reactivity: NfpaRating = Field(default=None, ge=0, le=4)
    nfpa_special: Optional[str] = Field(default=None, max_length=8)
    sds_url: Optional[str] = None
    supplier: Optional[str] = None

    # Forms send "" for untouched inputs; a blank CAS must not collide with another blank
    @field_validator("cas_number", "formula", "nfpa_special", "sds_url", "supplier", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value


class ChemicalCreate(ChemicalBase):
    pass


class ChemicalUpdate(ChemicalBase):
    name: Optional[str] = Field(default=None, min_length=1)


class Chemical(ChemicalBase):
    id: int
    created_at: datetime
    updated_at: datetime


class ChemicalListItem(Chemical):
    active_bottles: int = 0
    total_bottles: int = 0


class ChemicalList(APIModel):
    chemicals: list[ChemicalListItem]
    pagination: Pagination


# --- Locations ---------------------------------------------------------------

class LocationBase(APIModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    room: Optional[str] = None
    building: Optional[str] = None
    storage_type: Optional[str] = None


class LocationCreate(LocationBase):
    pass


class LocationUpdate(LocationBase):
    name: Optional[str] = Field(default=None, min_length=1)


class Location(LocationBase):
    id: int
    created_at: datetime
    updated_at: datetime


class LocationListItem(Location):
    bottle_count: int = 0


# --- Bottles -----------------------------------------------------------------

class BottleFields(APIModel):
    location_id: Optional[int] = None
    quantity: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = None
    order_date: Optional[date] = None
    expiration_date: Optional[date] = None
    received_date: Optional[date] = None
    lot_number: Optional[str] = None
    po_number: Optional[str] = None
    notes: Optional[str] = None


class BottleCreate(BottleFields):
    chemical_id: int
    # Strict so JSON true is not read as 1; the range is checked by the allocator
    number_of_bottles: StrictInt = 1


class BottleUpdate(BottleFields):
    status: Optional[BottleStatus] = None


class Bottle(BottleFields):
    id: int
    bottle_id: str
    parent_id: str
    child_number: int
    chemical_id: int
    status: BottleStatus
    created_at: datetime
    updated_at: datetime


class BottleDetail(Bottle):
    chemical: Optional[Chemical] = None
    location: Optional[Location] = None


class BottleWithLocation(Bottle):
    location: Optional[Location] = None


class BottleWithChemical(Bottle):
    chemical: Optional[Chemical] = None


class BottleList(APIModel):
    bottles: list[BottleDetail]
    pagination: Pagination


class BottleBatch(APIModel):
    message: str
    parent_id: str
    bottles: list[BottleDetail]


class BulkStatusUpdate(APIModel):
    bottle_ids: list[int] = Field(min_length=1)
    status: BottleStatus


class BulkStatusResult(APIModel):
    message: str
    updated: int


class ChemicalDetail(Chemical):
    bottles: list[BottleWithLocation] = []


class LocationDetail(Location):
    bottles: list[BottleWithChemical] = []


# --- Lookup / misc -----------------------------------------------------------

class ChemicalLookupResult(APIModel):
    cas_number: str
    name: str
    formula: Optional[str] = None
    molecular_weight: Optional[float] = None
    nfpa_health: NfpaRating = None
    nfpa_fire: NfpaRating = None
    nfpa_reactivity: NfpaRating = None
    nfpa_special: Optional[str] = None
    sds_url: Optional[str] = None
    supplier: Optional[str] = None


class NameSearchResult(APIModel):
    name: str
    formula: Optional[str] = None
    molecular_weight: Optional[float] = None


class Stats(APIModel):
    total_chemicals: int
    total_bottles: int
    active_bottles: int
    expired_bottles: int
    total_locations: int


class Message(APIModel):
    message: str

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..database import get_db

router = APIRouter(prefix="/locations", tags=["locations"])


@router.get("", response_model=list[schemas.LocationListItem])
def list_locations(db: Session = Depends(get_db)):
    return [
        schemas.LocationListItem.model_validate(location).model_copy(update={"bottle_count": count})
        for location, count in crud.list_locations(db)
    ]


@router.get("/{location_id}", response_model=schemas.LocationDetail)
def read_location(location_id: int, db: Session = Depends(get_db)):
    location = crud.get_location(db, location_id)
    # Only bottles still on the shelf are shown
    bottles = crud.active_bottles_at(db, location.id)
    return schemas.LocationDetail(
        **schemas.Location.model_validate(location).model_dump(),
        bottles=[schemas.BottleWithChemical.model_validate(b) for b in bottles],
    )


@router.post("", response_model=schemas.Location, status_code=status.HTTP_201_CREATED)
def create_location(payload: schemas.LocationCreate, db: Session = Depends(get_db)):
    return crud.create_location(db, payload)


@router.put("/{location_id}", response_model=schemas.Location)
def update_location(location_id: int, payload: schemas.LocationUpdate, db: Session = Depends(get_db)):
    return crud.update_location(db, location_id, payload)


@router.delete("/{location_id}", response_model=schemas.Message)
def delete_location(location_id: int, db: Session = Depends(get_db)):
    crud.delete_location(db, location_id)
    return schemas.Message(message="Location deleted successfully")

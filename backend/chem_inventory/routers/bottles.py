from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import config, crud, schemas
from ..database import get_db

router = APIRouter(prefix="/bottles", tags=["bottles"])


@router.get("", response_model=schemas.BottleList)
def list_bottles(
    search: Optional[str] = Query(None),
    chemical_id: Optional[int] = Query(None, alias="chemicalId"),
    location_id: Optional[int] = Query(None, alias="locationId"),
    bottle_status: Optional[schemas.BottleStatus] = Query(None, alias="status"),
    expired: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    bottles, pagination = crud.list_bottles(
        db,
        search=search,
        chemical_id=chemical_id,
        location_id=location_id,
        status=bottle_status,
        expired=expired,
        page=page,
        limit=limit,
    )
    return schemas.BottleList(
        bottles=[schemas.BottleDetail.model_validate(b) for b in bottles],
        pagination=pagination,
    )


@router.post("/bulk-status", response_model=schemas.BulkStatusResult)
def bulk_update_status(payload: schemas.BulkStatusUpdate, db: Session = Depends(get_db)):
    updated = crud.bulk_update_status(db, payload.bottle_ids, payload.status)
    return schemas.BulkStatusResult(message=f"Updated {updated} bottles", updated=updated)


@router.get("/{bottle_id}", response_model=schemas.BottleDetail)
def read_bottle(bottle_id: int, db: Session = Depends(get_db)):
    return crud.get_bottle(db, bottle_id)


@router.post("", response_model=schemas.BottleBatch, status_code=status.HTTP_201_CREATED)
def create_bottles(payload: schemas.BottleCreate, db: Session = Depends(get_db)):
    allocation, bottles = crud.create_bottles(db, payload)
    return schemas.BottleBatch(
        message=f"Created {len(bottles)} bottle(s)",
        parent_id=allocation.parent_id,
        bottles=[schemas.BottleDetail.model_validate(b) for b in bottles],
    )


@router.put("/{bottle_id}", response_model=schemas.BottleDetail)
def update_bottle(bottle_id: int, payload: schemas.BottleUpdate, db: Session = Depends(get_db)):
    return crud.update_bottle(db, bottle_id, payload)


@router.delete("/{bottle_id}", response_model=schemas.Message)
def delete_bottle(bottle_id: int, db: Session = Depends(get_db)):
    crud.delete_bottle(db, bottle_id)
    return schemas.Message(message="Bottle deleted successfully")

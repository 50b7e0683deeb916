from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import config, crud, schemas
from ..database import get_db

router = APIRouter(prefix="/chemicals", tags=["chemicals"])


@router.get("", response_model=schemas.ChemicalList)
def list_chemicals(
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    chemicals, counts, pagination = crud.list_chemicals(db, search=search, page=page, limit=limit)
    items = []
    for chemical in chemicals:
        active, total = counts.get(chemical.id, (0, 0))
        item = schemas.ChemicalListItem.model_validate(chemical)
        items.append(item.model_copy(update={"active_bottles": active, "total_bottles": total}))
    return schemas.ChemicalList(chemicals=items, pagination=pagination)


@router.get("/{chemical_id}", response_model=schemas.ChemicalDetail)
def read_chemical(chemical_id: int, db: Session = Depends(get_db)):
    return crud.get_chemical(db, chemical_id)


@router.post("", response_model=schemas.Chemical, status_code=status.HTTP_201_CREATED)
def create_chemical(chemical: schemas.ChemicalCreate, db: Session = Depends(get_db)):
    return crud.create_chemical(db, chemical)


@router.put("/{chemical_id}", response_model=schemas.Chemical)
def update_chemical(chemical_id: int, payload: schemas.ChemicalUpdate, db: Session = Depends(get_db)):
    return crud.update_chemical(db, chemical_id, payload)


@router.delete("/{chemical_id}", response_model=schemas.Message)
def delete_chemical(chemical_id: int, db: Session = Depends(get_db)):
    crud.delete_chemical(db, chemical_id)
    return schemas.Message(message="Chemical deleted successfully")

from typing import Optional

from fastapi import APIRouter, Query

from .. import lookup, schemas
from ..errors import InvalidArgument, NotFound

router = APIRouter(prefix="/lookup", tags=["lookup"])


@router.get("/cas/{cas_number}", response_model=schemas.ChemicalLookupResult)
def lookup_cas(cas_number: str):
    data = lookup.lookup_cas(cas_number)
    if data is None:
        raise NotFound(
            "Chemical not found",
            code="lookup.not_found",
            casNumber=cas_number,
            suggestion="Try entering the chemical information manually",
        )
    return schemas.ChemicalLookupResult(**data)


@router.get("/search", response_model=list[schemas.NameSearchResult])
def search(q: Optional[str] = Query(None)):
    if not q or not q.strip():
        raise InvalidArgument("Search query required", code="lookup.query_required")
    return [schemas.NameSearchResult(**row) for row in lookup.search_by_name(q.strip())]


@router.get("/sds/{cas_number}", response_model=dict[str, str])
def sds(cas_number: str):
    return lookup.sds_links(cas_number)

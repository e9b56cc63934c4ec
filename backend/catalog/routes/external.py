import requests
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from .. import models, schemas
from ..external import ExternalServiceError, fetch_crossref, fetch_pubmed, search_pubmed

router = APIRouter(prefix="/api/external", tags=["external"])


@router.post("/pubmed", response_model=list[schemas.PubMedArticle])
async def pubmed_search(
    payload: schemas.PubMedQuery,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        return search_pubmed(payload.query, payload.limit)
    except (requests.RequestException, KeyError, ValueError):
        raise HTTPException(status_code=502, detail="Failed to reach PubMed")


@router.get("/pubmed/{pubmed_id}")
def pubmed_record(pubmed_id: int, user: models.User = Depends(get_current_user)):
    try:
        return fetch_pubmed(pubmed_id)
    except ExternalServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/doi")
def doi_lookup(payload: schemas.DoiLookup, user: models.User = Depends(get_current_user)):
    try:
        return fetch_crossref(payload.doi)
    except ExternalServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from .. import models, schemas, search

router = APIRouter(prefix="/api/institutions", tags=["institutions"])


@router.post("", response_model=schemas.InstitutionOut)
def create_institution(
    data: schemas.InstitutionCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    if db.query(models.Institution).filter_by(title=data.title).first():
        raise HTTPException(status_code=422, detail="Title has already been taken")
    institution = models.Institution(**data.model_dump())
    db.add(institution)
    db.commit()
    db.refresh(institution)
    search.index_record(institution)
    return institution


@router.get("", response_model=list[schemas.InstitutionOut])
def list_institutions(db: Session = Depends(get_db), user=Depends(get_optional_user)):
    return db.query(models.Institution).order_by(models.Institution.title).all()


@router.get("/{institution_id}", response_model=schemas.InstitutionOut)
def get_institution(institution_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    institution = db.get(models.Institution, institution_id)
    if not institution:
        raise HTTPException(status_code=404)
    return institution

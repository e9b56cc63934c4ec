from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from .. import models, schemas, auth, search

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
async def read_profile(current_user: models.User = Depends(auth.get_current_user)):
    return current_user


@router.put("/me", response_model=schemas.UserOut)
async def update_profile(
    update: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    if update.full_name is not None:
        current_user.full_name = update.full_name
    if update.orcid_id is not None:
        current_user.orcid_id = update.orcid_id
    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    search.index_record(current_user)
    return current_user


@router.get("/me/projects", response_model=list[schemas.ProjectOut])
async def my_projects(current_user: models.User = Depends(auth.get_current_user)):
    return current_user.projects

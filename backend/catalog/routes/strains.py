from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from .. import audit, authorization, models, schemas, search
from ..services import assets as asset_service

router = APIRouter(prefix="/api/strains", tags=["strains"])


@router.post("", response_model=schemas.StrainOut, status_code=201)
def create_strain(
    data: schemas.StrainCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    strain = asset_service.new_asset(
        models.Strain, user, **data.model_dump(exclude={"project_ids", "sharing"})
    )
    asset_service.set_projects(db, strain, data.project_ids)
    asset_service.apply_sharing_form(db, strain, data.sharing)
    db.add(strain)
    db.commit()
    db.refresh(strain)
    audit.log_action(db, user.id, "create", "strains", "Strain", strain.id)
    search.index_record(strain)
    return strain


@router.get("", response_model=list[schemas.StrainOut])
def list_strains(db: Session = Depends(get_db), user=Depends(get_optional_user)):
    strains = db.query(models.Strain).order_by(models.Strain.title).all()
    return [s for s in strains if authorization.can_view(db, user, s)]


@router.get("/{strain_id}", response_model=schemas.StrainOut)
def get_strain(strain_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    strain = asset_service.get_asset_or_404(db, models.Strain, strain_id)
    authorization.ensure_can(db, user, strain, "view")
    return strain


@router.delete("/{strain_id}", status_code=204)
def delete_strain(strain_id: UUID, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    strain = asset_service.get_asset_or_404(db, models.Strain, strain_id)
    authorization.ensure_can(db, user, strain, "delete")
    asset_service.destroy_asset(db, strain)
    db.commit()
    return Response(status_code=204)

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from .. import authorization, models, schemas
from ..services import assets as asset_service

router = APIRouter(prefix="/api/scales", tags=["scales"])


@router.post("", response_model=schemas.ScaleOut, status_code=201)
def create_scale(
    data: schemas.ScaleCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Not authorized")
    if db.query(models.Scale).filter_by(key=data.key).first():
        raise HTTPException(status_code=422, detail="Key has already been taken")
    scale = models.Scale(**data.model_dump())
    db.add(scale)
    db.commit()
    db.refresh(scale)
    return scale


@router.get("", response_model=list[schemas.ScaleOut])
def list_scales(db: Session = Depends(get_db), user=Depends(get_optional_user)):
    return db.query(models.Scale).order_by(models.Scale.position, models.Scale.key).all()


@router.put("/assets/{asset_type}/{asset_id}", response_model=list[UUID])
def set_asset_scales(
    asset_type: str,
    asset_id: UUID,
    data: schemas.AssetScalesUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    model = models.ASSET_MODELS.get(asset_type)
    if model is None:
        raise HTTPException(status_code=404, detail=f"Unknown asset type {asset_type}")
    asset = asset_service.get_asset_or_404(db, model, asset_id)
    authorization.ensure_can(db, user, asset, "edit")
    found = db.query(models.Scale).filter(models.Scale.id.in_(data.scale_ids)).count() if data.scale_ids else 0
    if found != len(set(data.scale_ids)):
        raise HTTPException(status_code=422, detail="Unknown scale")
    asset_service.set_scales(db, asset, data.scale_ids)
    db.commit()
    return asset_service.scale_ids_for(db, asset)

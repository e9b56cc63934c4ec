from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from .. import audit, authorization, isa, jsonapi, models, schemas, search
from ..services import assets as asset_service

router = APIRouter(prefix="/api/assays", tags=["assays"])


def _assign_study(db: Session, user: models.User, assay: models.Assay, relationships: dict, creating: bool):
    ids = jsonapi.relationship_ids(relationships, "study", "studies")
    if ids is None and not creating:
        return
    if not ids:
        raise jsonapi.JsonApiError("Study can't be blank")
    study = db.get(models.Study, ids[0])
    if study is None:
        raise jsonapi.JsonApiError("Study not found")
    if not authorization.can_edit(db, user, study):
        raise HTTPException(status_code=403, detail="You are not authorized to edit this study")
    assay.study = study


def _apply_labels(assay: models.Assay, attributes: dict):
    for name in ("assay_type_label", "technology_type_label"):
        if name in attributes:
            setattr(assay, name, attributes[name])


@router.post("", status_code=201)
def create_assay(
    body: Any = Body(...),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        attributes, relationships = jsonapi.parse_document(body, "assays")
        assay = models.Assay(contributor=user)
        jsonapi.apply_asset_document(db, user, assay, attributes, relationships, creating=True)
        _apply_labels(assay, attributes)
        _assign_study(db, user, assay, relationships, creating=True)
    except jsonapi.JsonApiError as e:
        raise jsonapi.to_http(e)
    db.add(assay)
    db.commit()
    db.refresh(assay)
    audit.log_action(db, user.id, "create", "assays", "Assay", assay.id)
    search.index_record(assay)
    return jsonapi.document(jsonapi.assay_resource(db, assay))


@router.get("")
def list_assays(db: Session = Depends(get_db), user=Depends(get_optional_user)):
    records = db.query(models.Assay).order_by(models.Assay.created_at).all()
    return jsonapi.collection_document(
        [jsonapi.skeleton_resource("assays", r) for r in records if authorization.can_view(db, user, r)]
    )


@router.get("/{assay_id}")
def get_assay(assay_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    assay = asset_service.get_asset_or_404(db, models.Assay, assay_id)
    authorization.ensure_can(db, user, assay, "view")
    return jsonapi.document(jsonapi.assay_resource(db, assay))


@router.patch("/{assay_id}")
def update_assay(
    assay_id: UUID,
    body: Any = Body(...),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    assay = asset_service.get_asset_or_404(db, models.Assay, assay_id)
    authorization.ensure_can(db, user, assay, "edit")
    try:
        attributes, relationships = jsonapi.parse_document(body, "assays", assay.id)
        jsonapi.apply_asset_document(db, user, assay, attributes, relationships)
        _apply_labels(assay, attributes)
        _assign_study(db, user, assay, relationships, creating=False)
    except jsonapi.JsonApiError as e:
        raise jsonapi.to_http(e)
    db.commit()
    db.refresh(assay)
    search.index_record(assay)
    return jsonapi.document(jsonapi.assay_resource(db, assay))


@router.delete("/{assay_id}", status_code=204)
def delete_assay(assay_id: UUID, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    assay = asset_service.get_asset_or_404(db, models.Assay, assay_id)
    authorization.ensure_can(db, user, assay, "delete")
    asset_service.destroy_asset(db, assay)
    db.commit()
    audit.log_action(db, user.id, "destroy", "assays", "Assay", assay_id)
    return Response(status_code=204)


@router.post("/{assay_id}/assets", response_model=schemas.AssayAssetOut)
def link_assay_asset(
    assay_id: UUID,
    data: schemas.AssayAssetLink,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    assay = asset_service.get_asset_or_404(db, models.Assay, assay_id)
    authorization.ensure_can(db, user, assay, "edit")
    asset = asset_service.get_asset_or_404(db, models.ASSET_MODELS[data.asset_type], data.asset_id)
    authorization.ensure_can(db, user, asset, "view")
    link = isa.link_asset(db, assay, asset, data.direction)
    db.commit()
    db.refresh(link)
    return link


@router.get("/{assay_id}/assets", response_model=list[schemas.AssayAssetOut])
def list_assay_assets(assay_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    assay = asset_service.get_asset_or_404(db, models.Assay, assay_id)
    authorization.ensure_can(db, user, assay, "view")
    return assay.assay_assets


@router.delete("/{assay_id}/assets/{asset_type}/{asset_id}", status_code=204)
def unlink_assay_asset(
    assay_id: UUID,
    asset_type: str,
    asset_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    assay = asset_service.get_asset_or_404(db, models.Assay, assay_id)
    authorization.ensure_can(db, user, assay, "edit")
    removed = db.query(models.AssayAsset).filter_by(assay_id=assay.id, asset_type=asset_type, asset_id=asset_id).delete()
    if not removed:
        raise HTTPException(status_code=404, detail="Asset is not linked to this assay")
    db.commit()
    return Response(status_code=204)

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from .. import audit, authorization, jsonapi, models, search
from ..services import assets as asset_service

router = APIRouter(prefix="/api/studies", tags=["studies"])


def _assign_investigation(db: Session, user: models.User, study: models.Study, relationships: dict, creating: bool):
    ids = jsonapi.relationship_ids(relationships, "investigation", "investigations")
    if ids is None and not creating:
        return
    if not ids:
        raise jsonapi.JsonApiError("Investigation can't be blank")
    investigation = db.get(models.Investigation, ids[0])
    if investigation is None:
        raise jsonapi.JsonApiError("Investigation not found")
    # studies may only be hung under investigations the user can edit
    if not authorization.can_edit(db, user, investigation):
        raise HTTPException(status_code=403, detail="You are not authorized to edit this investigation")
    study.investigation = investigation


@router.post("", status_code=201)
def create_study(
    body: Any = Body(...),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        attributes, relationships = jsonapi.parse_document(body, "studies")
        study = models.Study(contributor=user)
        jsonapi.apply_asset_document(db, user, study, attributes, relationships, creating=True)
        _assign_investigation(db, user, study, relationships, creating=True)
    except jsonapi.JsonApiError as e:
        raise jsonapi.to_http(e)
    db.add(study)
    db.commit()
    db.refresh(study)
    audit.log_action(db, user.id, "create", "studies", "Study", study.id)
    search.index_record(study)
    return jsonapi.document(jsonapi.study_resource(db, study))


@router.get("")
def list_studies(db: Session = Depends(get_db), user=Depends(get_optional_user)):
    records = db.query(models.Study).order_by(models.Study.created_at).all()
    return jsonapi.collection_document(
        [jsonapi.skeleton_resource("studies", r) for r in records if authorization.can_view(db, user, r)]
    )


@router.get("/{study_id}")
def get_study(study_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    study = asset_service.get_asset_or_404(db, models.Study, study_id)
    authorization.ensure_can(db, user, study, "view")
    return jsonapi.document(jsonapi.study_resource(db, study))


@router.patch("/{study_id}")
def update_study(
    study_id: UUID,
    body: Any = Body(...),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    study = asset_service.get_asset_or_404(db, models.Study, study_id)
    authorization.ensure_can(db, user, study, "edit")
    try:
        attributes, relationships = jsonapi.parse_document(body, "studies", study.id)
        jsonapi.apply_asset_document(db, user, study, attributes, relationships)
        _assign_investigation(db, user, study, relationships, creating=False)
    except jsonapi.JsonApiError as e:
        raise jsonapi.to_http(e)
    db.commit()
    db.refresh(study)
    search.index_record(study)
    return jsonapi.document(jsonapi.study_resource(db, study))


@router.delete("/{study_id}", status_code=204)
def delete_study(study_id: UUID, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    study = asset_service.get_asset_or_404(db, models.Study, study_id)
    authorization.ensure_can(db, user, study, "delete")
    asset_service.destroy_asset(db, study)
    db.commit()
    audit.log_action(db, user.id, "destroy", "studies", "Study", study_id)
    return Response(status_code=204)

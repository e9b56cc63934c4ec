from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from .. import audit, authorization, jsonapi, models, search
from ..services import assets as asset_service

router = APIRouter(prefix="/api/investigations", tags=["investigations"])


@router.post("", status_code=201)
def create_investigation(
    body: Any = Body(...),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        attributes, relationships = jsonapi.parse_document(body, "investigations")
        investigation = models.Investigation(contributor=user)
        jsonapi.apply_asset_document(db, user, investigation, attributes, relationships, creating=True)
    except jsonapi.JsonApiError as e:
        raise jsonapi.to_http(e)
    db.add(investigation)
    db.commit()
    db.refresh(investigation)
    audit.log_action(db, user.id, "create", "investigations", "Investigation", investigation.id)
    search.index_record(investigation)
    return jsonapi.document(jsonapi.investigation_resource(db, investigation))


@router.get("")
def list_investigations(db: Session = Depends(get_db), user=Depends(get_optional_user)):
    records = db.query(models.Investigation).order_by(models.Investigation.created_at).all()
    return jsonapi.collection_document(
        [jsonapi.skeleton_resource("investigations", r) for r in records if authorization.can_view(db, user, r)]
    )


@router.get("/{investigation_id}")
def get_investigation(investigation_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    investigation = asset_service.get_asset_or_404(db, models.Investigation, investigation_id)
    authorization.ensure_can(db, user, investigation, "view")
    return jsonapi.document(jsonapi.investigation_resource(db, investigation))


@router.patch("/{investigation_id}")
def update_investigation(
    investigation_id: UUID,
    body: Any = Body(...),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    investigation = asset_service.get_asset_or_404(db, models.Investigation, investigation_id)
    authorization.ensure_can(db, user, investigation, "edit")
    try:
        attributes, relationships = jsonapi.parse_document(body, "investigations", investigation.id)
        jsonapi.apply_asset_document(db, user, investigation, attributes, relationships)
    except jsonapi.JsonApiError as e:
        raise jsonapi.to_http(e)
    db.commit()
    db.refresh(investigation)
    search.index_record(investigation)
    return jsonapi.document(jsonapi.investigation_resource(db, investigation))


@router.delete("/{investigation_id}", status_code=204)
def delete_investigation(
    investigation_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    investigation = asset_service.get_asset_or_404(db, models.Investigation, investigation_id)
    authorization.ensure_can(db, user, investigation, "delete")
    asset_service.destroy_asset(db, investigation)
    db.commit()
    audit.log_action(db, user.id, "destroy", "investigations", "Investigation", investigation_id)
    return Response(status_code=204)

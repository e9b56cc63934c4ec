"""Shared persistence helpers for contributed assets."""

from __future__ import annotations

import uuid
from typing import Iterable
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .. import authorization, models, search


def projects_for(db: Session, asset: models.AssetMixin) -> list[models.Project]:
    links = (
        db.query(models.AssetProject)
        .filter_by(asset_type=asset.asset_type, asset_id=asset.id)
        .all()
    )
    if not links:
        return []
    ids = [link.project_id for link in links]
    projects = db.query(models.Project).filter(models.Project.id.in_(ids)).all()
    return sorted(projects, key=lambda p: p.title)


def set_projects(db: Session, asset: models.AssetMixin, project_ids: Iterable[UUID]) -> list[models.Project]:
    """Replace the asset's project links. Unknown projects raise 422."""

    project_ids = list(dict.fromkeys(project_ids))
    projects = []
    if project_ids:
        projects = db.query(models.Project).filter(models.Project.id.in_(project_ids)).all()
        if len(projects) != len(project_ids):
            raise HTTPException(status_code=422, detail="Unknown project")
    db.query(models.AssetProject).filter_by(asset_type=asset.asset_type, asset_id=asset.id).delete()
    for project in projects:
        db.add(models.AssetProject(asset_type=asset.asset_type, asset_id=asset.id, project_id=project.id))
    return projects


def scale_ids_for(db: Session, asset: models.AssetMixin) -> list[UUID]:
    rows = db.query(models.AssetScale).filter_by(asset_type=asset.asset_type, asset_id=asset.id).all()
    return [row.scale_id for row in rows]


def set_scales(db: Session, asset: models.AssetMixin, scale_ids: Iterable[UUID]) -> None:
    if not asset.scalable:
        raise HTTPException(status_code=422, detail=f"{asset.asset_type} cannot be scaled")
    db.query(models.AssetScale).filter_by(asset_type=asset.asset_type, asset_id=asset.id).delete()
    for scale_id in dict.fromkeys(scale_ids):
        db.add(models.AssetScale(asset_type=asset.asset_type, asset_id=asset.id, scale_id=scale_id))


def get_asset_or_404(db: Session, model, asset_id: UUID):
    asset = db.get(model, asset_id)
    if not asset:
        raise HTTPException(status_code=404, detail=f"{model.__name__} not found")
    return asset


def destroy_asset(db: Session, asset: models.AssetMixin) -> None:
    """Delete an asset together with its links. Content blobs are kept."""

    key = dict(asset_type=asset.asset_type, asset_id=asset.id)
    db.query(models.AssetProject).filter_by(**key).delete()
    db.query(models.AssetScale).filter_by(**key).delete()
    db.query(models.AssayAsset).filter_by(**key).delete()
    authorization.invalidate_asset(db, asset)
    policy = asset.policy
    db.delete(asset)
    if policy is not None:
        db.delete(policy)
    search.remove_record(asset)


def apply_sharing_form(db: Session, asset: models.AssetMixin, sharing) -> models.Policy:
    """Apply a ``schemas.Sharing`` form; without one the asset stays private."""

    if sharing is None:
        return authorization.apply_sharing(db, asset, scope="private")
    return authorization.apply_sharing(
        db,
        asset,
        scope=sharing.scope,
        access=sharing.access,
        permissions=[p.model_dump() for p in sharing.permissions],
    )


def policy_summary(policy: models.Policy | None) -> dict:
    if policy is None:
        return {"sharing_scope": "private", "access": "no_access", "permissions": []}
    return {
        "sharing_scope": authorization.sharing_scope_key(policy.sharing_scope),
        "access": authorization.access_type_key(policy.access_type),
        "permissions": [
            {
                "contributor_type": p.contributor_type,
                "contributor_id": str(p.contributor_id),
                "access": authorization.access_type_key(p.access_type),
            }
            for p in policy.permissions
        ],
    }


def new_asset(model, user: models.User, **values):
    """Build an unsaved asset with its id assigned so links can be written before flush."""

    return model(id=uuid.uuid4(), contributor=user, **values)

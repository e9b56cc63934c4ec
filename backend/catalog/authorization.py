from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from . import models

# purpose: centralize permission predicates for policy-governed assets
# depends_on: catalog.models.Policy, catalog.models.AuthLookup


@dataclass(frozen=True)
class AssetPermissions:
    """The four predicates cached per (user, asset)."""

    can_view: bool
    can_edit: bool
    can_manage: bool
    can_delete: bool


_ACCESS_KEYS: dict[str, int] = {
    "no_access": models.NO_ACCESS,
    "view": models.VISIBLE,
    "download": models.ACCESSIBLE,
    "edit": models.EDITING,
    "manage": models.MANAGING,
}

_SCOPE_KEYS: dict[str, int] = {
    "private": models.PRIVATE,
    "all_users": models.ALL_USERS,
    "everyone": models.EVERYONE,
}


def access_type_for(key: str) -> int:
    try:
        return _ACCESS_KEYS[key]
    except KeyError:
        raise ValueError(f"Unknown access type '{key}'")


def access_type_key(access_type: int) -> str:
    return next((k for k, v in _ACCESS_KEYS.items() if v == access_type), "no_access")


def sharing_scope_for(key: str) -> int:
    try:
        return _SCOPE_KEYS[key]
    except KeyError:
        raise ValueError(f"Unknown sharing scope '{key}'")


def sharing_scope_key(scope: int) -> str:
    return next((k for k, v in _SCOPE_KEYS.items() if v == scope), "private")


def current_project_ids(user: models.User | None) -> set[UUID]:
    if user is None:
        return set()
    return {project.id for project in user.projects}


def is_asset(record) -> bool:
    return isinstance(record, models.AssetMixin)


def access_level(user: models.User | None, asset: models.AssetMixin) -> int:
    """Return the highest access type the user holds on the asset."""

    if user is not None and (user.is_admin or asset.contributor_id == user.id):
        return models.MANAGING
    policy = asset.policy
    if policy is None:
        return models.NO_ACCESS
    if user is None:
        return policy.access_type if policy.sharing_scope == models.EVERYONE else models.NO_ACCESS

    level = models.NO_ACCESS
    if policy.sharing_scope in (models.ALL_USERS, models.EVERYONE):
        level = policy.access_type
    project_ids = current_project_ids(user)
    for permission in policy.permissions:
        if permission.contributor_type == "User" and permission.contributor_id == user.id:
            level = max(level, permission.access_type)
        elif permission.contributor_type == "Project" and permission.contributor_id in project_ids:
            level = max(level, permission.access_type)
    return level


def compute_permissions(user: models.User | None, asset: models.AssetMixin) -> AssetPermissions:
    level = access_level(user, asset)
    can_manage = level >= models.MANAGING
    can_delete = can_manage and asset.state_allows_delete()
    return AssetPermissions(
        can_view=level >= models.VISIBLE,
        can_edit=level >= models.EDITING,
        can_manage=can_manage,
        can_delete=can_delete,
    )


def permissions_for(db: Session, user: models.User | None, asset: models.AssetMixin) -> AssetPermissions:
    """Resolve predicates through the lookup table, falling back to the policy."""

    if user is None:
        return compute_permissions(None, asset)
    cached = (
        db.query(models.AuthLookup)
        .filter_by(user_id=user.id, asset_type=asset.asset_type, asset_id=asset.id)
        .first()
    )
    if cached is not None:
        return AssetPermissions(
            can_view=cached.can_view,
            can_edit=cached.can_edit,
            can_manage=cached.can_manage,
            # deletability depends on live state, not on the policy
            can_delete=cached.can_manage and asset.state_allows_delete(),
        )
    return compute_permissions(user, asset)


def can_view(db: Session, user: models.User | None, record) -> bool:
    if record is None:
        return False
    if not is_asset(record):
        return True
    return permissions_for(db, user, record).can_view


def can_edit(db: Session, user: models.User | None, record) -> bool:
    if not is_asset(record):
        return bool(user and user.is_admin)
    return permissions_for(db, user, record).can_edit


def ensure_can(db: Session, user: models.User | None, asset: models.AssetMixin, action: str) -> None:
    """Raise 403 unless the user may perform ``action`` on the asset."""

    allowed = getattr(permissions_for(db, user, asset), f"can_{action}")
    if not allowed:
        raise HTTPException(
            status_code=403,
            detail=f"You are not authorized to {action} this {asset.asset_type.lower()}",
        )


def invalidate_asset(db: Session, asset: models.AssetMixin) -> None:
    db.query(models.AuthLookup).filter_by(asset_type=asset.asset_type, asset_id=asset.id).delete()


def refresh_user_lookup(db: Session, user: models.User) -> int:
    """Recompute every cached lookup row for one user. Returns rows written."""

    db.query(models.AuthLookup).filter_by(user_id=user.id).delete()
    written = 0
    for model in models.ASSET_MODELS.values():
        for asset in db.query(model).all():
            perms = compute_permissions(user, asset)
            db.add(
                models.AuthLookup(
                    user_id=user.id,
                    asset_type=asset.asset_type,
                    asset_id=asset.id,
                    can_view=perms.can_view,
                    can_edit=perms.can_edit,
                    can_manage=perms.can_manage,
                    can_delete=perms.can_delete,
                )
            )
            written += 1
    return written


def apply_sharing(
    db: Session,
    asset: models.AssetMixin,
    *,
    scope: str = "private",
    access: str = "view",
    permissions: list[dict] | None = None,
) -> models.Policy:
    """Replace the asset's policy with one built from sharing form values."""

    policy = asset.policy or models.Policy()
    policy.sharing_scope = sharing_scope_for(scope)
    policy.access_type = access_type_for(access) if policy.sharing_scope != models.PRIVATE else models.NO_ACCESS
    policy.permissions = [
        models.Permission(
            contributor_type=p["contributor_type"],
            contributor_id=p["contributor_id"],
            access_type=access_type_for(p.get("access", "view")),
        )
        for p in (permissions or [])
    ]
    asset.policy = policy
    db.add(policy)
    if asset.id is not None:
        invalidate_asset(db, asset)
    return policy


def policy_document(policy: models.Policy | None) -> dict:
    if policy is None:
        return {"access": "no_access", "permissions": []}
    return {
        "access": access_type_key(policy.access_type),
        "permissions": [
            {
                "resource": {
                    "id": str(p.contributor_id),
                    "type": "projects" if p.contributor_type == "Project" else "people",
                },
                "access": access_type_key(p.access_type),
            }
            for p in policy.permissions
        ],
    }


def apply_policy_document(db: Session, asset: models.AssetMixin, document: dict) -> models.Policy:
    """Apply an API ``policy`` attribute; any access beyond no_access is public."""

    access = document.get("access", "no_access")
    permissions = []
    for entry in document.get("permissions") or []:
        resource = entry.get("resource") or {}
        permissions.append(
            {
                "contributor_type": "Project" if resource.get("type") == "projects" else "User",
                "contributor_id": UUID(str(resource["id"])),
                "access": entry.get("access", "view"),
            }
        )
    scope = "private" if access == "no_access" else "everyone"
    return apply_sharing(db, asset, scope=scope, access=access, permissions=permissions)

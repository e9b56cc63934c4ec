from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from .. import audit, authorization, config, models, schemas, search
from ..services import assets as asset_service

router = APIRouter(prefix="/api/nodes", tags=["nodes"])


def is_github_cwl(blob: models.ContentBlob | None) -> bool:
    url = (blob.url or "") if blob else ""
    return "github.com" in url and url.endswith("cwl")


def doi_for(node: models.Node, version: int) -> str:
    return f"{config.doi_prefix()}/{config.doi_suffix()}.node.{node.id}.{version}"


def _content_blob(db: Session, node: models.Node, version: int) -> models.ContentBlob | None:
    return (
        db.query(models.ContentBlob)
        .filter_by(asset_type="Node", asset_id=node.id, asset_version=version)
        .first()
    )


def _add_content_blob(db: Session, node: models.Node, version: int, data) -> None:
    if not (data.content_url or data.original_filename):
        return
    db.add(
        models.ContentBlob(
            asset_type="Node",
            asset_id=node.id,
            asset_version=version,
            url=data.content_url,
            original_filename=data.original_filename,
            content_type=data.content_type,
        )
    )


def _version_out(db: Session, node: models.Node, version: models.NodeVersion) -> schemas.NodeVersionOut:
    blob = _content_blob(db, node, version.version)
    return schemas.NodeVersionOut(
        version=version.version,
        title=version.title,
        description=version.description,
        revision_comments=version.revision_comments,
        doi=version.doi,
        content_blob=schemas.ContentBlobOut.model_validate(blob) if blob else None,
        is_github_cwl=is_github_cwl(blob),
    )


def _node_out(db: Session, node: models.Node) -> schemas.NodeOut:
    return schemas.NodeOut(
        id=node.id,
        title=node.title,
        description=node.description,
        version=node.version,
        contributor_id=node.contributor_id,
        project_ids=[p.id for p in asset_service.projects_for(db, node)],
        versions=[_version_out(db, node, v) for v in node.versions],
    )


def _get_version(node: models.Node, version: int) -> models.NodeVersion:
    found = node.find_version(version)
    if found is None:
        raise HTTPException(status_code=404, detail=f"Version {version} not found")
    return found


@router.post("", response_model=schemas.NodeOut, status_code=201)
def create_node(
    data: schemas.NodeCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    node = asset_service.new_asset(models.Node, user, title=data.title, description=data.description, version=1)
    node.versions.append(models.NodeVersion(version=1, title=data.title, description=data.description))
    asset_service.set_projects(db, node, data.project_ids)
    asset_service.apply_sharing_form(db, node, data.sharing)
    _add_content_blob(db, node, 1, data)
    db.add(node)
    db.commit()
    db.refresh(node)
    audit.log_action(db, user.id, "create", "nodes", "Node", node.id)
    search.index_record(node)
    return _node_out(db, node)


@router.get("", response_model=list[schemas.NodeOut])
def list_nodes(db: Session = Depends(get_db), user=Depends(get_optional_user)):
    nodes = db.query(models.Node).order_by(models.Node.title).all()
    return [_node_out(db, n) for n in nodes if authorization.can_view(db, user, n)]


@router.get("/{node_id}", response_model=schemas.NodeOut)
def get_node(node_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    node = asset_service.get_asset_or_404(db, models.Node, node_id)
    authorization.ensure_can(db, user, node, "view")
    return _node_out(db, node)


@router.get("/{node_id}/versions/{version}", response_model=schemas.NodeVersionOut)
def get_node_version(node_id: UUID, version: int, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    node = asset_service.get_asset_or_404(db, models.Node, node_id)
    authorization.ensure_can(db, user, node, "view")
    return _version_out(db, node, _get_version(node, version))


@router.post("/{node_id}/versions", response_model=schemas.NodeOut, status_code=201)
def create_node_version(
    node_id: UUID,
    data: schemas.NodeVersionCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    node = asset_service.get_asset_or_404(db, models.Node, node_id)
    authorization.ensure_can(db, user, node, "edit")
    number = node.version + 1
    node.title = data.title or node.title
    if data.description is not None:
        node.description = data.description
    node.version = number
    node.versions.append(
        models.NodeVersion(
            version=number,
            title=node.title,
            description=node.description,
            revision_comments=data.revision_comments,
        )
    )
    _add_content_blob(db, node, number, data)
    db.commit()
    db.refresh(node)
    search.index_record(node)
    return _node_out(db, node)


@router.post("/{node_id}/versions/{version}/mint_doi", response_model=schemas.NodeVersionOut)
def mint_doi(
    node_id: UUID,
    version: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    node = asset_service.get_asset_or_404(db, models.Node, node_id)
    authorization.ensure_can(db, user, node, "manage")
    node_version = _get_version(node, version)
    if node_version.doi:
        raise HTTPException(status_code=422, detail="A DOI has already been minted for this version")
    # only publicly visible versions can be cited
    if not authorization.compute_permissions(None, node).can_view:
        raise HTTPException(status_code=422, detail="The node must be publicly visible to mint a DOI")
    node_version.doi = doi_for(node, version)
    db.commit()
    db.refresh(node_version)
    audit.log_action(db, user.id, "mint_doi", "nodes", "Node", node.id, {"doi": node_version.doi})
    return _version_out(db, node, node_version)


@router.delete("/{node_id}", status_code=204)
def delete_node(node_id: UUID, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    node = asset_service.get_asset_or_404(db, models.Node, node_id)
    authorization.ensure_can(db, user, node, "delete")
    asset_service.destroy_asset(db, node)
    db.commit()
    audit.log_action(db, user.id, "destroy", "nodes", "Node", node_id)
    return Response(status_code=204)

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from .. import audit, authorization, external, isa, models, schemas, search
from ..services import assets as asset_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/publications", tags=["publications"])


def _publication_out(db: Session, publication: models.Publication) -> schemas.PublicationOut:
    return schemas.PublicationOut(
        id=publication.id,
        title=publication.title,
        pubmed_id=publication.pubmed_id,
        doi=publication.doi,
        abstract=publication.abstract,
        journal=publication.journal,
        published_date=publication.published_date,
        authors=publication.authors or [],
        project_ids=[p.id for p in asset_service.projects_for(db, publication)],
        assay_ids=[a.id for a in isa.assays_for(db, publication)],
    )


def _fetch_metadata(data: schemas.PublicationCreate, doi: str | None) -> dict:
    try:
        if data.pubmed_id is not None:
            return external.fetch_pubmed(data.pubmed_id)
        if doi:
            return external.fetch_crossref(doi)
    except external.ExternalServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {}


@router.post("", response_model=schemas.PublicationOut, status_code=201)
def create_publication(
    data: schemas.PublicationCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    doi = external.normalize_doi(data.doi) if data.doi else None
    if data.pubmed_id is not None and db.query(models.Publication).filter_by(pubmed_id=data.pubmed_id).first():
        raise HTTPException(status_code=422, detail="A publication with this PubMed ID already exists")
    if doi and db.query(models.Publication).filter_by(doi=doi).first():
        raise HTTPException(status_code=422, detail="A publication with this DOI already exists")

    fetched = _fetch_metadata(data, doi)
    supplied = data.model_dump(
        exclude={"project_ids", "assay_ids", "sharing", "doi"}, exclude_none=True, exclude_defaults=True
    )
    values = {**fetched, **supplied}
    values["doi"] = doi or (external.normalize_doi(fetched["doi"]) if fetched.get("doi") else None)
    if not values.get("title"):
        raise HTTPException(status_code=422, detail="Title can't be blank")

    publication = asset_service.new_asset(
        models.Publication,
        user,
        title=values["title"],
        pubmed_id=values.get("pubmed_id"),
        doi=values["doi"],
        abstract=values.get("abstract"),
        journal=values.get("journal"),
        published_date=values.get("published_date"),
        authors=list(values.get("authors") or []),
    )
    asset_service.set_projects(db, publication, data.project_ids)
    asset_service.apply_sharing_form(db, publication, data.sharing or schemas.Sharing(scope="everyone"))
    db.add(publication)
    db.flush()

    for assay_id in data.assay_ids:
        assay = db.get(models.Assay, assay_id)
        # silently skip assays the submitter may not edit
        if assay is None or not authorization.can_edit(db, user, assay):
            logger.info("Not linking publication %s to assay %s", publication.id, assay_id)
            continue
        isa.link_asset(db, assay, publication)

    db.commit()
    db.refresh(publication)
    audit.log_action(db, user.id, "create", "publications", "Publication", publication.id)
    search.index_record(publication)
    return _publication_out(db, publication)


@router.get("", response_model=list[schemas.PublicationOut])
def list_publications(db: Session = Depends(get_db), user=Depends(get_optional_user)):
    publications = db.query(models.Publication).order_by(models.Publication.published_date.desc()).all()
    return [_publication_out(db, p) for p in publications if authorization.can_view(db, user, p)]


@router.get("/{publication_id}", response_model=schemas.PublicationOut)
def get_publication(publication_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    publication = asset_service.get_asset_or_404(db, models.Publication, publication_id)
    authorization.ensure_can(db, user, publication, "view")
    return _publication_out(db, publication)


@router.delete("/{publication_id}", status_code=204)
def delete_publication(
    publication_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    publication = asset_service.get_asset_or_404(db, models.Publication, publication_id)
    authorization.ensure_can(db, user, publication, "delete")
    asset_service.destroy_asset(db, publication)
    db.commit()
    audit.log_action(db, user.id, "destroy", "publications", "Publication", publication_id)
    return Response(status_code=204)

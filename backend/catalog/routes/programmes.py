from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from .. import audit, config, models, schemas, search, tasks

router = APIRouter(prefix="/api/programmes", tags=["programmes"])


def _get_programme(db: Session, programme_id: UUID) -> models.Programme:
    programme = db.get(models.Programme, programme_id)
    if not programme:
        raise HTTPException(status_code=404, detail="Programme not found")
    return programme


def _sync_administrators(db: Session, programme: models.Programme, administrator_ids: list[UUID]):
    """Make exactly the listed people administrators of the programme."""

    wanted = db.query(models.User).filter(models.User.id.in_(administrator_ids)).all() if administrator_ids else []
    if len(wanted) != len(set(administrator_ids)):
        raise HTTPException(status_code=422, detail="Unknown administrator")
    current = list(programme.administrators)
    for person in wanted:
        if person not in current:
            programme.administrators.append(person)
    for person in current:
        if person not in wanted:
            programme.administrators.remove(person)


def _assign_projects(db: Session, programme: models.Programme, project_ids: list[UUID]):
    projects = db.query(models.Project).filter(models.Project.id.in_(project_ids)).all() if project_ids else []
    if len(projects) != len(set(project_ids)):
        raise HTTPException(status_code=422, detail="Unknown project")
    programme.projects = projects


def _reindex(programme: models.Programme):
    tasks.enqueue_reindex("programmes", [programme.id])


@router.post("", response_model=schemas.ProgrammeOut)
def create_programme(
    data: schemas.ProgrammeCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    if not models.Programme.can_create(
        user,
        enabled=config.programmes_enabled(),
        allow_user_creation=config.allow_user_programme_creation(),
    ):
        raise HTTPException(status_code=403, detail="You are not permitted to create a programme")
    if db.query(models.Programme).filter_by(title=data.title).first():
        raise HTTPException(status_code=422, detail="Title has already been taken")
    programme = models.Programme(
        title=data.title,
        description=data.description,
        web_page=data.web_page,
        funding_details=data.funding_details,
        created_by=user.id,
        # programmes created by non-admins wait for activation
        is_activated=bool(user.is_admin),
    )
    db.add(programme)
    _assign_projects(db, programme, data.project_ids)
    administrator_ids = data.administrator_ids
    if administrator_ids is None and not user.is_admin:
        administrator_ids = [user.id]
    if administrator_ids is not None:
        _sync_administrators(db, programme, administrator_ids)
    db.commit()
    db.refresh(programme)
    audit.log_action(db, user.id, "create", "programmes", "Programme", programme.id)
    _reindex(programme)
    return programme


@router.get("", response_model=list[schemas.ProgrammeOut])
def list_programmes(
    status: Optional[Literal["activated", "rejected", "pending"]] = None,
    db: Session = Depends(get_db),
    user: Optional[models.User] = Depends(get_optional_user),
):
    query = db.query(models.Programme)
    if status == "activated":
        query = query.filter(models.Programme.is_activated.is_(True))
    elif status == "rejected":
        query = query.filter(
            models.Programme.is_activated.is_(False),
            models.Programme.activation_rejection_reason.isnot(None),
        )
    elif status == "pending":
        query = query.filter(
            models.Programme.is_activated.is_(False),
            models.Programme.activation_rejection_reason.is_(None),
        )
    return query.order_by(models.Programme.title).all()


@router.get("/{programme_id}", response_model=schemas.ProgrammeOut)
def get_programme(programme_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    return _get_programme(db, programme_id)


@router.put("/{programme_id}", response_model=schemas.ProgrammeOut)
def update_programme(
    programme_id: UUID,
    data: schemas.ProgrammeUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    programme = _get_programme(db, programme_id)
    if not programme.can_edit(user):
        raise HTTPException(status_code=403, detail="Not authorized")
    changes = data.model_dump(exclude_unset=True, exclude={"project_ids", "administrator_ids"})
    if "title" in changes and changes["title"] != programme.title:
        if db.query(models.Programme).filter_by(title=changes["title"]).first():
            raise HTTPException(status_code=422, detail="Title has already been taken")
    for k, v in changes.items():
        setattr(programme, k, v)
    if data.project_ids is not None:
        _assign_projects(db, programme, data.project_ids)
    if data.administrator_ids is not None:
        _sync_administrators(db, programme, data.administrator_ids)
    db.commit()
    db.refresh(programme)
    _reindex(programme)
    return programme


@router.delete("/{programme_id}", status_code=204)
def delete_programme(programme_id: UUID, db: Session = Depends(get_db), user=Depends(get_current_user)):
    programme = _get_programme(db, programme_id)
    if not programme.can_delete(user):
        raise HTTPException(status_code=403, detail="Not authorized")
    programme.administrators = []
    db.delete(programme)
    db.commit()
    search.remove_record(programme)
    audit.log_action(db, user.id, "destroy", "programmes", "Programme", programme_id)
    return Response(status_code=204)


@router.post("/{programme_id}/activate", response_model=schemas.ProgrammeOut)
def activate_programme(programme_id: UUID, db: Session = Depends(get_db), user=Depends(get_current_user)):
    programme = _get_programme(db, programme_id)
    if not programme.activate(user):
        raise HTTPException(status_code=403, detail="The programme cannot be activated")
    db.commit()
    db.refresh(programme)
    return programme


@router.post("/{programme_id}/reject", response_model=schemas.ProgrammeOut)
def reject_programme(
    programme_id: UUID,
    data: schemas.ProgrammeReject,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    programme = _get_programme(db, programme_id)
    if not programme.can_activate(user):
        raise HTTPException(status_code=403, detail="The programme cannot be rejected")
    programme.activation_rejection_reason = data.reason
    db.commit()
    db.refresh(programme)
    return programme


@router.get("/{programme_id}/people", response_model=list[schemas.UserOut])
def programme_people(programme_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    return _get_programme(db, programme_id).people


@router.get("/{programme_id}/institutions", response_model=list[schemas.InstitutionOut])
def programme_institutions(programme_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    return _get_programme(db, programme_id).institutions

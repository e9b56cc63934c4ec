from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from .. import audit, authorization, models, schemas, search
from ..services import assets as asset_service
from ..services.samples import SampleDataError, check_data, title_from_data

router = APIRouter(prefix="/api/samples", tags=["samples"])


def _sample_out(db: Session, sample: models.Sample) -> schemas.SampleOut:
    return schemas.SampleOut(
        id=sample.id,
        title=sample.title,
        description=sample.description,
        sample_type_id=sample.sample_type_id,
        data=sample.data or {},
        contributor_id=sample.contributor_id,
        project_ids=[p.id for p in asset_service.projects_for(db, sample)],
        policy=asset_service.policy_summary(sample.policy),
    )


def _set_data(db: Session, sample: models.Sample, sample_type: models.SampleType, data: dict, title: str | None):
    try:
        sample.data = check_data(db, sample_type, data)
    except SampleDataError as e:
        raise HTTPException(status_code=422, detail=str(e))
    sample.title = title_from_data(sample_type, sample.data) or title or sample.title
    if not sample.title:
        raise HTTPException(status_code=422, detail="Title can't be blank")


@router.post("", response_model=schemas.SampleOut, status_code=201)
def create_sample(
    data: schemas.SampleCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    sample_type = db.get(models.SampleType, data.sample_type_id)
    if not sample_type:
        raise HTTPException(status_code=422, detail="Unknown sample type")
    sample = asset_service.new_asset(models.Sample, user, sample_type_id=sample_type.id, description=data.description)
    _set_data(db, sample, sample_type, data.data, data.title)
    asset_service.set_projects(db, sample, data.project_ids)
    asset_service.apply_sharing_form(db, sample, data.sharing)
    db.add(sample)
    db.commit()
    db.refresh(sample)
    audit.log_action(db, user.id, "create", "samples", "Sample", sample.id)
    search.index_record(sample)
    return _sample_out(db, sample)


@router.get("", response_model=list[schemas.SampleOut])
def list_samples(
    sample_type_id: UUID | None = None,
    db: Session = Depends(get_db),
    user=Depends(get_optional_user),
):
    query = db.query(models.Sample)
    if sample_type_id:
        query = query.filter(models.Sample.sample_type_id == sample_type_id)
    return [_sample_out(db, s) for s in query.order_by(models.Sample.created_at).all() if authorization.can_view(db, user, s)]


@router.get("/{sample_id}", response_model=schemas.SampleOut)
def get_sample(sample_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    sample = asset_service.get_asset_or_404(db, models.Sample, sample_id)
    authorization.ensure_can(db, user, sample, "view")
    return _sample_out(db, sample)


@router.put("/{sample_id}", response_model=schemas.SampleOut)
def update_sample(
    sample_id: UUID,
    data: schemas.SampleUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    sample = asset_service.get_asset_or_404(db, models.Sample, sample_id)
    authorization.ensure_can(db, user, sample, "edit")
    if data.sharing is not None:
        authorization.ensure_can(db, user, sample, "manage")
    if data.description is not None:
        sample.description = data.description
    if data.data is not None:
        _set_data(db, sample, sample.sample_type, data.data, data.title)
    elif data.title:
        sample.title = data.title
    if data.project_ids is not None:
        asset_service.set_projects(db, sample, data.project_ids)
    if data.sharing is not None:
        asset_service.apply_sharing_form(db, sample, data.sharing)
    db.commit()
    db.refresh(sample)
    search.index_record(sample)
    return _sample_out(db, sample)


@router.delete("/{sample_id}", status_code=204)
def delete_sample(sample_id: UUID, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    sample = asset_service.get_asset_or_404(db, models.Sample, sample_id)
    authorization.ensure_can(db, user, sample, "delete")
    asset_service.destroy_asset(db, sample)
    db.commit()
    audit.log_action(db, user.id, "destroy", "samples", "Sample", sample_id)
    return Response(status_code=204)

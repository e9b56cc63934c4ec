from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from .. import audit, jsonapi, models, schemas

router = APIRouter(prefix="/api/sample_types", tags=["sample_types"])


def _get_sample_type(db: Session, sample_type_id: UUID) -> models.SampleType:
    sample_type = db.get(models.SampleType, sample_type_id)
    if not sample_type:
        raise HTTPException(status_code=404, detail="Sample type not found")
    return sample_type


@router.post("", status_code=201)
def create_sample_type(
    data: schemas.SampleTypeCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    if db.query(models.SampleType).filter_by(title=data.title).first():
        raise HTTPException(status_code=422, detail="Title has already been taken")
    if sum(1 for a in data.sample_attributes if a.is_title) != 1:
        raise HTTPException(status_code=422, detail="There must be exactly one title attribute")
    titles = [a.title for a in data.sample_attributes]
    if len(set(titles)) != len(titles):
        raise HTTPException(status_code=422, detail="Attribute titles must be unique")
    sample_type = models.SampleType(
        title=data.title,
        description=data.description,
        uploaded_template=data.uploaded_template,
        tags=list(data.tags),
        contributor_id=user.id,
    )
    for position, attribute in enumerate(data.sample_attributes):
        if attribute.linked_sample_type_id and not db.get(models.SampleType, attribute.linked_sample_type_id):
            raise HTTPException(status_code=422, detail="Unknown linked sample type")
        sample_type.sample_attributes.append(
            models.SampleAttribute(position=position, **attribute.model_dump())
        )
    db.add(sample_type)
    db.commit()
    db.refresh(sample_type)
    audit.log_action(db, user.id, "create", "sample_types", "SampleType", sample_type.id)
    return jsonapi.document(jsonapi.sample_type_resource(sample_type))


@router.get("")
def list_sample_types(db: Session = Depends(get_db), user=Depends(get_optional_user)):
    records = db.query(models.SampleType).order_by(models.SampleType.title).all()
    return jsonapi.collection_document([jsonapi.skeleton_resource("sample_types", r) for r in records])


@router.get("/{sample_type_id}")
def get_sample_type(sample_type_id: UUID, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    return jsonapi.document(jsonapi.sample_type_resource(_get_sample_type(db, sample_type_id)))


@router.delete("/{sample_type_id}", status_code=204)
def delete_sample_type(
    sample_type_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    sample_type = _get_sample_type(db, sample_type_id)
    if not (user.is_admin or sample_type.contributor_id == user.id):
        raise HTTPException(status_code=403, detail="Not authorized")
    if sample_type.samples:
        raise HTTPException(status_code=422, detail="Sample type still has samples")
    if db.query(models.SampleAttribute).filter_by(linked_sample_type_id=sample_type.id).first():
        raise HTTPException(status_code=422, detail="Sample type is linked from another sample type")
    db.delete(sample_type)
    db.commit()
    return Response(status_code=204)

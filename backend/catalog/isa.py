"""Investigation/Study/Assay navigation shared by every asset type.

Records that declare their own association (``Study.investigation``,
``Assay.study``) use it; everything else is reached through ``AssayAsset``
links and walked upwards.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from . import models


def _unique(records):
    seen = []
    for record in records:
        if record is not None and record not in seen:
            seen.append(record)
    return seen


def assays_for(db: Session, asset) -> list[models.Assay]:
    if isinstance(asset, models.Assay):
        return [asset]
    if isinstance(asset, models.Study):
        return list(asset.assays)
    if isinstance(asset, models.Investigation):
        return [assay for study in asset.studies for assay in study.assays]
    links = (
        db.query(models.AssayAsset)
        .filter_by(asset_type=asset.asset_type, asset_id=asset.id)
        .all()
    )
    return _unique(link.assay for link in links)


def studies_for(db: Session, asset) -> list[models.Study]:
    if isinstance(asset, models.Study):
        return [asset]
    if isinstance(asset, models.Assay):
        return [asset.study]
    if isinstance(asset, models.Investigation):
        return list(asset.studies)
    return _unique(assay.study for assay in assays_for(db, asset))


def investigations_for(db: Session, asset) -> list[models.Investigation]:
    if isinstance(asset, models.Investigation):
        return [asset]
    if isinstance(asset, models.Study):
        return [asset.investigation]
    return _unique(study.investigation for study in studies_for(db, asset))


def related_people(asset) -> list[models.User]:
    people = [asset.contributor]
    people.extend(getattr(asset, "creators", None) or [])
    return _unique(people)


def assay_type_titles(db: Session, asset) -> list[str]:
    return [a.assay_type_label for a in assays_for(db, asset) if a.assay_type_label]


def technology_type_titles(db: Session, asset) -> list[str]:
    return [a.technology_type_label for a in assays_for(db, asset) if a.technology_type_label]


def link_asset(db: Session, assay: models.Assay, asset, direction: str | None = None) -> models.AssayAsset:
    existing = (
        db.query(models.AssayAsset)
        .filter_by(assay_id=assay.id, asset_type=asset.asset_type, asset_id=asset.id)
        .first()
    )
    if existing:
        if direction is not None:
            existing.direction = direction
        return existing
    link = models.AssayAsset(assay_id=assay.id, asset_type=asset.asset_type, asset_id=asset.id, direction=direction)
    db.add(link)
    return link

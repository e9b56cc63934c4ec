"""JSON:API document parsing and rendering for the ISA endpoints."""

from __future__ import annotations

import uuid
from typing import Any
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from . import authorization, config, isa, models
from .services import assets as asset_service

# purpose: one place for the data/type/id contract of JSON:API payloads


class JsonApiError(Exception):
    """A request document that does not fit the addressed collection."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def to_http(error: JsonApiError) -> HTTPException:
    return HTTPException(status_code=422, detail={"errors": [{"title": "Unprocessable Entity", "detail": error.message}]})


def parse_document(body: Any, collection: str, resource_id: UUID | None = None) -> tuple[dict, dict]:
    """Validate ``data`` of a POST/PATCH body and return its attributes and relationships."""

    if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
        raise JsonApiError("A POST/PUT request must have a data record")
    data = body["data"]
    kind = data.get("type")
    if not kind:
        raise JsonApiError("A POST/PUT request must specify a data:type")
    if kind != collection:
        raise JsonApiError(f"The specified data:type does not match the URL's object ({kind} vs. {collection})")
    if resource_id is not None and "id" in data and str(data["id"]) != str(resource_id):
        raise JsonApiError("id specified by the PUT request does not match object-id in the JSON input")
    attributes = data.get("attributes") or {}
    relationships = data.get("relationships") or {}
    if not isinstance(attributes, dict) or not isinstance(relationships, dict):
        raise JsonApiError("attributes and relationships must be objects")
    return attributes, relationships


def relationship_ids(relationships: dict, name: str, kind: str) -> list[UUID] | None:
    """Return ids of a to-many or to-one relationship, or ``None`` when absent."""

    if name not in relationships:
        return None
    data = (relationships[name] or {}).get("data")
    if data is None:
        return []
    entries = data if isinstance(data, list) else [data]
    ids = []
    for entry in entries:
        if entry.get("type") != kind:
            raise JsonApiError(f"The relationship {name} must reference {kind}")
        try:
            ids.append(UUID(str(entry["id"])))
        except (KeyError, ValueError):
            raise JsonApiError(f"The relationship {name} has an invalid id")
    return ids


def ref(kind: str, record) -> dict:
    return {"id": str(record.id), "type": kind}


def to_many(kind: str, records) -> dict:
    return {"data": [ref(kind, r) for r in records]}


def to_one(kind: str, record) -> dict:
    return {"data": ref(kind, record) if record is not None else None}


def document(resource: dict) -> dict:
    return {"data": resource, "jsonapi": {"version": "1.0"}, "meta": meta()}


def collection_document(resources: list[dict]) -> dict:
    return {"data": resources, "jsonapi": {"version": "1.0"}, "meta": meta()}


def meta() -> dict:
    return {"base_url": config.site_base_host(), "api_version": config.api_version()}


def _asset_base(db: Session, asset: models.AssetMixin) -> tuple[dict, dict]:
    attributes = {
        "title": asset.title,
        "description": asset.description,
        "policy": authorization.policy_document(asset.policy),
    }
    relationships = {
        "submitter": {"data": [ref("people", asset.contributor)] if asset.contributor else []},
        "people": to_many("people", isa.related_people(asset)),
        "projects": to_many("projects", asset_service.projects_for(db, asset)),
    }
    return attributes, relationships


def investigation_resource(db: Session, investigation: models.Investigation) -> dict:
    attributes, relationships = _asset_base(db, investigation)
    relationships["studies"] = to_many("studies", investigation.studies)
    relationships["assays"] = to_many("assays", isa.assays_for(db, investigation))
    return {
        "id": str(investigation.id),
        "type": "investigations",
        "attributes": attributes,
        "relationships": relationships,
        "links": {"self": f"/investigations/{investigation.id}"},
    }


def study_resource(db: Session, study: models.Study) -> dict:
    attributes, relationships = _asset_base(db, study)
    relationships["investigation"] = to_one("investigations", study.investigation)
    relationships["assays"] = to_many("assays", study.assays)
    return {
        "id": str(study.id),
        "type": "studies",
        "attributes": attributes,
        "relationships": relationships,
        "links": {"self": f"/studies/{study.id}"},
    }


def assay_resource(db: Session, assay: models.Assay) -> dict:
    attributes, relationships = _asset_base(db, assay)
    attributes["assay_type_label"] = assay.assay_type_label
    attributes["technology_type_label"] = assay.technology_type_label
    relationships["study"] = to_one("studies", assay.study)
    relationships["investigation"] = to_one("investigations", assay.study.investigation if assay.study else None)
    assets: dict[str, list] = {}
    for link in assay.assay_assets:
        assets.setdefault(link.asset_type, []).append({"id": str(link.asset_id), "type": _collection_for(link.asset_type)})
    for asset_type, refs in sorted(assets.items()):
        relationships[_collection_for(asset_type)] = {"data": refs}
    return {
        "id": str(assay.id),
        "type": "assays",
        "attributes": attributes,
        "relationships": relationships,
        "links": {"self": f"/assays/{assay.id}"},
    }


def _collection_for(asset_type: str) -> str:
    return {
        "Sample": "samples",
        "Strain": "strains",
        "Publication": "publications",
        "Node": "nodes",
    }.get(asset_type, asset_type.lower() + "s")


def sample_attribute_details(attribute: models.SampleAttribute) -> str:
    unit = f"( {attribute.unit_symbol} )" if attribute.unit_symbol else ""
    required = "*" if attribute.required else ""
    return " ".join(p for p in (f"{attribute.title} ({attribute.attribute_type})", unit, required) if p)


def sample_type_resource(sample_type: models.SampleType) -> dict:
    return {
        "id": str(sample_type.id),
        "type": "sample_types",
        "attributes": {
            "title": sample_type.title,
            "description": sample_type.description,
            "uploaded_template": bool(sample_type.uploaded_template),
            "attribute_details": [sample_attribute_details(a) for a in sample_type.sample_attributes],
        },
        "relationships": {
            "samples": to_many("samples", sample_type.samples),
            "sample_attributes": to_many("sample_attributes", sample_type.sample_attributes),
            "linked_sample_attributes": to_many("sample_attributes", sample_type.linked_sample_attributes),
            "tags": {"data": [{"id": tag, "type": "tags"} for tag in (sample_type.tags or [])]},
        },
        "links": {"self": f"/sample_types/{sample_type.id}"},
    }


def skeleton_resource(kind: str, record) -> dict:
    """Minimal representation used for mixed search results."""

    return {
        "id": str(record.id),
        "type": kind,
        "attributes": {"title": record.title},
        "links": {"self": f"/{kind}/{record.id}"},
    }


def apply_asset_document(
    db: Session,
    user: models.User,
    asset: models.AssetMixin,
    attributes: dict,
    relationships: dict,
    *,
    creating: bool = False,
) -> None:
    """Copy shared asset attributes and the ``projects`` relationship onto ``asset``."""

    if asset.id is None:
        asset.id = uuid.uuid4()
    if creating or "title" in attributes:
        title = (attributes.get("title") or "").strip()
        if not title:
            raise JsonApiError("Title can't be blank")
        asset.title = title
    if "description" in attributes:
        asset.description = attributes["description"]

    project_ids = relationship_ids(relationships, "projects", "projects")
    if creating and not project_ids:
        raise JsonApiError("Projects must be specified")
    if project_ids is not None:
        asset_service.set_projects(db, asset, project_ids)

    if "policy" in attributes:
        if not creating and not authorization.permissions_for(db, user, asset).can_manage:
            raise HTTPException(status_code=403, detail="You are not authorized to change the sharing of this item")
        authorization.apply_policy_document(db, asset, attributes["policy"] or {})
    elif creating:
        authorization.apply_sharing(db, asset, scope="private")

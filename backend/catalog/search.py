from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

import sqlalchemy as sa
from elasticsearch import Elasticsearch, NotFoundError

from . import config, models

logger = logging.getLogger(__name__)

# a query returns this many hits unless the type holds more records
DEFAULT_PER_PAGE = 30
# default index.max_result_window
MAX_RESULT_WINDOW = 10000

_es_client: Optional[Elasticsearch] = None
_es_url: Optional[str] = None


@dataclass(frozen=True)
class SearchableType:
    key: str
    singular: str
    model: type
    fields: tuple[str, ...]


SEARCHABLE_TYPES: tuple[SearchableType, ...] = (
    SearchableType("people", "person", models.User, ("full_name", "email", "orcid_id")),
    SearchableType("programmes", "programme", models.Programme, ("title", "description", "funding_details")),
    SearchableType("projects", "project", models.Project, ("title", "description")),
    SearchableType("institutions", "institution", models.Institution, ("title", "country")),
    SearchableType("investigations", "investigation", models.Investigation, ("title", "description")),
    SearchableType("studies", "study", models.Study, ("title", "description")),
    SearchableType("assays", "assay", models.Assay, ("title", "description", "assay_type_label", "technology_type_label")),
    SearchableType("strains", "strain", models.Strain, ("title", "organism", "provider_name", "comment")),
    SearchableType("samples", "sample", models.Sample, ("title", "description")),
    SearchableType("publications", "publication", models.Publication, ("title", "abstract", "journal", "doi")),
    SearchableType("nodes", "node", models.Node, ("title", "description")),
)


def searchable_type_for(record) -> SearchableType | None:
    return next((t for t in SEARCHABLE_TYPES if isinstance(record, t.model)), None)


def resolve_type(name: str) -> SearchableType | None:
    name = name.strip().lower().replace("-", "_")
    return next((t for t in SEARCHABLE_TYPES if name in (t.key, t.singular)), None)


def get_client() -> Optional[Elasticsearch]:
    global _es_client, _es_url
    url = config.elasticsearch_url()
    if not url:
        return None
    if _es_client is None or url != _es_url:
        _es_client = Elasticsearch(url)
        _es_url = url
    return _es_client


def index_name(stype: SearchableType) -> str:
    return f"{config.search_index_prefix()}{stype.key}"


def _document(stype: SearchableType, record) -> dict:
    doc = {"id": str(record.id)}
    for field in stype.fields:
        value = getattr(record, field, None)
        doc[field] = value if value is None else str(value)
    if stype.model is models.Programme:
        doc["institutions"] = [i.title for i in record.institutions if i is not None]
    return doc


def index_record(record):
    client = get_client()
    stype = searchable_type_for(record)
    if not client or not stype or not config.search_enabled():
        return
    client.index(index=index_name(stype), id=str(record.id), document=_document(stype, record))


def remove_record(record):
    client = get_client()
    stype = searchable_type_for(record)
    if not client or not stype:
        return
    client.options(ignore_status=404).delete(index=index_name(stype), id=str(record.id))


def per_page_for(stype: SearchableType, db_session) -> int:
    count = db_session.query(stype.model).count()
    return min(count if count > DEFAULT_PER_PAGE else DEFAULT_PER_PAGE, MAX_RESULT_WINDOW)


def search_type(stype: SearchableType, keywords: str, db_session) -> List:
    """Return the records of one type matching the keywords.

    Index hits whose record has gone from the database come back as ``None``
    so callers can tell the index is out of sync.
    """

    per_page = per_page_for(stype, db_session)
    client = get_client()
    if client:
        try:
            res = client.search(
                index=index_name(stype),
                query={"multi_match": {"query": keywords, "fields": list(stype.fields)}},
                size=per_page,
                ignore_unavailable=True,
            )
        except NotFoundError:
            # nothing of this type has been indexed yet
            logger.info("No search index for %s yet", stype.key)
            return []
        ids = [hit["_id"] for hit in res["hits"]["hits"]]
        if not ids:
            return []
        found = {
            str(r.id): r
            for r in db_session.query(stype.model).filter(stype.model.id.in_([uuid.UUID(i) for i in ids])).all()
        }
        missing = [i for i in ids if i not in found]
        if missing:
            logger.warning("Search index for %s out of sync, %d stale hits", stype.key, len(missing))
        return [found.get(i) for i in ids]
    else:
        # fallback simple LIKE search
        clauses = [getattr(stype.model, f).ilike(f"%{term}%") for f in stype.fields for term in keywords.split()]
        return db_session.query(stype.model).filter(sa.or_(*clauses)).limit(per_page).all()

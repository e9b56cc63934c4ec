"""Fan a keyword query out over every searchable record type."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from uuid import UUID

import requests
import sentry_sdk
from elasticsearch import ConnectionError as SearchConnectionError
from sqlalchemy.orm import Session

from .. import authorization, config, external, models, search
from . import assets as asset_service

# purpose: dispatch, merge and post-filter keyword searches across the catalog
# depends_on: catalog.search, catalog.external, catalog.authorization

logger = logging.getLogger(__name__)

SERVICE_DOWN_MESSAGE = (
    "The search service is currently not running, and we've been notified of the problem. "
    "Please try again later"
)

# too numerous to list in API responses
JSON_EXCLUDED_TYPES = {"strains", "samples"}

EXTERNAL_SEARCH_LIMIT = 10

_QUERY_SYNTAX = re.compile(r'[+\-&|!(){}\[\]^"~*?:\\/]')
_TAGS = re.compile(r"<[^>]*>")


class InvalidSearchException(Exception):
    pass


@dataclass(frozen=True)
class ExternalResult:
    """A hit from an external bibliographic service, not stored locally."""

    id: str
    title: str
    source: str = "pubmed"
    kind: str = "publications"


@dataclass
class SearchOutcome:
    query: str
    search_type: str
    scale_key: str
    results: list = field(default_factory=list)
    scaled: dict[str, list] = field(default_factory=dict)
    notice: str | None = None
    error: str | None = None
    include_external_search: bool = False


def sanitize(raw: str | None) -> str:
    return _TAGS.sub("", raw or "").strip()


def filter_search_term(term: str) -> str:
    """Drop query-syntax characters the index would interpret."""

    return " ".join(_QUERY_SYNTAX.sub(" ", term).split())


def _union(results: list, found) -> None:
    for record in found:
        if record not in results:
            results.append(record)


def external_search(query: str, search_type: str) -> list[ExternalResult]:
    if search_type not in ("all", "publications", "publication"):
        return []
    try:
        articles = external.search_pubmed(query, EXTERNAL_SEARCH_LIMIT)
    except requests.RequestException as e:
        logger.warning("External search for %r failed: %s", query, e)
        return []
    return [ExternalResult(id=str(a["id"]), title=a["title"]) for a in articles]


def perform_search(
    db: Session,
    *,
    query: str,
    search_type: str,
    is_json: bool = False,
    include_external: bool = False,
    filters: dict[str, str] | None = None,
) -> list:
    downcase_query = query.lower()
    if not downcase_query.strip():
        raise InvalidSearchException("Query string is empty or blank")

    kind = search_type.lower()
    results: list = []
    if kind == "all":
        sources = [t for t in search.SEARCHABLE_TYPES if not (is_json and t.key in JSON_EXCLUDED_TYPES)]
        for source in sources:
            _union(results, search.search_type(source, downcase_query, db))
    else:
        source = search.resolve_type(kind)
        if source is None:
            raise InvalidSearchException(f"{kind} is not a valid search type")
        results = list(search.search_type(source, downcase_query, db))

    if include_external:
        _union(results, external_search(downcase_query, kind))

    return apply_filters(db, results, filters or {})


def _record_project_ids(db: Session, record) -> set[UUID]:
    if isinstance(record, models.Project):
        return {record.id}
    if isinstance(record, models.Programme):
        return {p.id for p in record.projects}
    if isinstance(record, models.User):
        return {p.id for p in record.projects}
    if isinstance(record, models.Institution):
        return {wg.project_id for wg in record.work_groups}
    if authorization.is_asset(record):
        return {p.id for p in asset_service.projects_for(db, record)}
    return set()


def _record_kind(record) -> str | None:
    if isinstance(record, ExternalResult):
        return record.kind
    stype = search.searchable_type_for(record)
    return stype.key if stype else None


def apply_filters(db: Session, results: list, filters: dict[str, str]) -> list:
    """Narrow results by the selected facets."""

    if not config.faceted_search_enabled() or not filters:
        return results
    filtered = []
    kind = filters.get("type")
    project_id = _as_uuid(filters.get("project"))
    programme_id = _as_uuid(filters.get("programme"))
    programme_project_ids: set[UUID] = set()
    if programme_id:
        programme = db.get(models.Programme, programme_id)
        programme_project_ids = {p.id for p in programme.projects} if programme else set()
    for record in results:
        if record is None:
            filtered.append(record)
            continue
        if kind and _record_kind(record) != kind:
            continue
        if project_id or programme_id:
            project_ids = _record_project_ids(db, record)
            if project_id and project_id not in project_ids:
                continue
            if programme_id and not (project_ids & programme_project_ids):
                continue
        filtered.append(record)
    return filtered


def _as_uuid(value: str | None) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(value)
    except ValueError:
        raise InvalidSearchException(f"{value} is not a valid filter value")


def _scaled_results(db: Session, results: list) -> dict[str, list]:
    scales = db.query(models.Scale).order_by(models.Scale.position, models.Scale.key).all()
    asset_ids = [r.id for r in results if authorization.is_asset(r) and r.scalable]
    scale_ids: dict[tuple[str, UUID], set[UUID]] = {}
    if asset_ids:
        for row in db.query(models.AssetScale).filter(models.AssetScale.asset_id.in_(asset_ids)).all():
            scale_ids.setdefault((row.asset_type, row.asset_id), set()).add(row.scale_id)

    def on_scale(record, scale) -> bool:
        if not (authorization.is_asset(record) and record.scalable):
            return True
        return scale.id in scale_ids.get((record.asset_type, record.id), set())

    scaled = {scale.key: [r for r in results if on_scale(r, scale)] for scale in scales}
    scaled["all"] = results
    return scaled


def _viewable(db: Session, user, record) -> bool:
    if isinstance(record, ExternalResult):
        return True
    return authorization.can_view(db, user, record)


def run_search(
    db: Session,
    user: models.User | None,
    *,
    raw_query: str | None,
    search_type: str | None = None,
    scale: str | None = None,
    include_external_search: str | None = None,
    is_json: bool = False,
    filters: dict[str, str] | None = None,
) -> SearchOutcome:
    query = filter_search_term(sanitize(raw_query))
    outcome = SearchOutcome(
        query=query,
        search_type=search_type or "all",
        scale_key=scale or "all",
        include_external_search=include_external_search == "1",
    )
    results: list = []
    if config.search_enabled():
        try:
            results = perform_search(
                db,
                query=query,
                search_type=outcome.search_type,
                is_json=is_json,
                include_external=outcome.include_external_search and config.external_search_enabled(),
                filters=filters,
            )
        except InvalidSearchException as e:
            outcome.error = str(e)
        except SearchConnectionError as e:
            outcome.error = SERVICE_DOWN_MESSAGE
            logger.error("An error with search occurred, search backend connection refused: %s", e)
            sentry_sdk.capture_exception(e)

    # the index can hold records that have since been deleted
    results = [r for r in results if r is not None]
    results = [r for r in results if _viewable(db, user, r)]

    outcome.scaled = _scaled_results(db, results)
    logger.debug("Scaled search results: %s", {k: len(v) for k, v in outcome.scaled.items()})
    outcome.results = outcome.scaled.get(outcome.scale_key, [])

    if not outcome.results:
        outcome.notice = f"No matches found for '{query}'."
    else:
        count = len(outcome.results)
        outcome.notice = (
            f"{count} {'item' if count == 1 else 'items'} matched '{query}' within their title or content."
        )
    return outcome

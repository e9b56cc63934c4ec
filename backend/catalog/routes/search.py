from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_optional_user
from .. import audit, config, jsonapi, search
from ..services import search_dispatch

router = APIRouter(prefix="/api/search", tags=["search"])


def _resource(record) -> dict:
    if isinstance(record, search_dispatch.ExternalResult):
        return {
            "id": record.id,
            "type": record.kind,
            "attributes": {"title": record.title, "source": record.source},
        }
    return jsonapi.skeleton_resource(search.searchable_type_for(record).key, record)


def _filters(request: Request) -> dict[str, str]:
    filters = {}
    for name, value in request.query_params.items():
        if name.startswith("filter[") and name.endswith("]") and value:
            filters[name[len("filter["):-1]] = value
    return filters


@router.get("")
def search_catalog(
    request: Request,
    q: Optional[str] = None,
    search_query: Optional[str] = None,
    search_type: str = "all",
    scale: str = "all",
    include_external_search: str = "0",
    db: Session = Depends(get_db),
    user=Depends(get_optional_user),
):
    outcome = search_dispatch.run_search(
        db,
        user,
        raw_query=q if q is not None else search_query,
        search_type=search_type,
        scale=scale,
        include_external_search=include_external_search,
        is_json=True,
        filters=_filters(request),
    )
    audit.log_action(
        db,
        user.id if user else None,
        "search",
        "search",
        details={"search_query": outcome.query, "search_type": outcome.search_type, "results": len(outcome.results)},
    )
    return {
        "data": [_resource(r) for r in outcome.results],
        "jsonapi": {"version": "1.0"},
        "meta": {
            "base_url": config.site_base_host(),
            "api_version": config.api_version(),
            "search_query": outcome.query,
            "search_type": outcome.search_type,
            "notice": outcome.notice,
            "error": outcome.error,
            "scale": outcome.scale_key,
            "scales": {key: len(records) for key, records in outcome.scaled.items()},
            "include_external_search": outcome.include_external_search,
        },
    }

"""
Event ingestion and insights endpoints
"""

from typing import Any, Awaitable, Callable, Dict, List
import json
import logging
import pandas as pd
from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError as PydanticValidationError

from adoption_insights.config import settings
from adoption_insights.schemas.base import flatten_errors
from adoption_insights.schemas.event import AnalyticsEventIn
from adoption_insights.schemas.insights import InsightsQuery, QueryType, UserConfig
from adoption_insights.services.event_database import EventDatabase
from adoption_insights.services.ingestion_service import IngestionService
from adoption_insights.services.techdocs_service import TechdocsMetadataClient

router = APIRouter()
logger = logging.getLogger(__name__)


def get_event_database(request: Request) -> EventDatabase:
    """A fresh adapter per request so stored filters never leak between requests"""
    return EventDatabase(request.app.state.session_factory, request.app.state.dialect)


def get_ingestion_service(request: Request) -> IngestionService:
    return IngestionService(request.app.state.processor, request.app.state.dialect.is_json_supported())


def get_techdocs_client() -> TechdocsMetadataClient:
    return TechdocsMetadataClient(settings.TECHDOCS_BASE_URL, timeout=settings.TECHDOCS_TIMEOUT_SECONDS)


@router.post("", status_code=status.HTTP_200_OK)
async def track_events(
    events: List[AnalyticsEventIn] = Body(...),
    ingestion: IngestionService = Depends(get_ingestion_service),
) -> Any:
    """
    Queue analytics events for persistence. Delivery is asynchronous; a 200
    only means the events were accepted.
    """
    ingestion.track_events(event.model_dump(exclude_none=True) for event in events)
    return {"success": True, "message": "Event received"}


@router.get("")
async def get_insights(
    request: Request,
    db: EventDatabase = Depends(get_event_database),
    techdocs: TechdocsMetadataClient = Depends(get_techdocs_client),
) -> Any:
    """
    Aggregated adoption metrics for the requested date range
    """
    try:
        query = InsightsQuery.model_validate(dict(request.query_params))
    except PydanticValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Invalid query", "errors": flatten_errors(e)},
        )

    query_type = QueryType(query.type)
    db.set_filters(query.to_filters())
    db.set_config(UserConfig(licensed_users=settings.LICENSED_USERS))

    handlers: Dict[QueryType, Callable[[], Awaitable[Dict]]] = {
        QueryType.TOTAL_USERS: db.get_users,
        QueryType.ACTIVE_USERS: db.get_daily_users,
        QueryType.TOP_SEARCHES: db.get_top_searches,
        QueryType.TOP_PLUGINS: db.get_top_plugin_views,
        QueryType.TOP_TECHDOCS: db.get_top_techdocs_views,
        QueryType.TOP_TEMPLATES: db.get_top_template_views,
        QueryType.TOP_CATALOG_ENTITIES: db.get_top_catalog_entities_views,
    }

    try:
        result = await handlers[query_type]()
        if query_type == QueryType.TOP_TECHDOCS:
            await techdocs.attach_site_names(result["data"], request.headers.get("authorization"))
    except Exception as e:
        logger.error(f"Error getting {query_type.value} insights: {type(e).__name__}: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal Server Error"},
        )

    if query.format == "csv" and result.get("data"):
        return Response(
            content=to_csv(result["data"]),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="adoption_insights_{query_type.value}.csv"'},
        )
    return result


def to_csv(rows: List[Dict[str, Any]]) -> str:
    """Render rows as CSV; nested values such as trend series are kept as JSON"""
    flat = [
        {key: json.dumps(value) if isinstance(value, (list, dict)) else value for key, value in row.items()}
        for row in rows
    ]
    return pd.DataFrame(flat).to_csv(index=False)

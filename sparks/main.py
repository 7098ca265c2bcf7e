import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import FastAPI, Response, Request, Depends, HTTPException, status, Query

from sparks.config import settings
from sparks.errors import GroupNotFound, PolicyViolation, SparkError
from sparks.geo import format_distance
from sparks.location import LocationProvider, resolve_location
from sparks.logging_utils import setup_logging, RequestLoggingMiddleware, log_spark_data
from sparks.metrics import get_metrics, get_metrics_content_type
from sparks.models import Coordinates, Group
from sparks.storage import SparkStore
from sparks.sweeper import ExpirySweeper
from sparks.utils import ICEBREAKERS, format_time_left, random_icebreaker
from sparks.schemas import (
    CreateGroupRequest,
    ErrorResponse,
    GroupResponse,
    HealthResponse,
    IcebreakersResponse,
    MessageResponse,
    MessagesListResponse,
    NearbyGroupResponse,
    NearbyGroupsResponse,
    PostMessageRequest,
    PostMessageResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: build a fresh store and start its expiry sweeper
    - Shutdown: stop the sweeper so no timer thread outlives the app
    """
    store = SparkStore()
    sweeper = ExpirySweeper(store, interval_seconds=settings.SWEEP_INTERVAL_SECONDS)
    app.state.store = store
    app.state.sweeper = sweeper
    if not hasattr(app.state, "location_provider"):
        app.state.location_provider = None

    sweeper.start()
    try:
        yield
    finally:
        sweeper.stop()


app = FastAPI(
    title="Sparks API",
    description="Ephemeral, location-anchored group chats that vanish after 24 hours",
    version="1.0.0",
    lifespan=lifespan,
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Dependencies
# =============================================================================

def get_store(request: Request) -> SparkStore:
    return request.app.state.store


def get_location_provider(request: Request) -> Optional[LocationProvider]:
    return getattr(request.app.state, "location_provider", None)


def default_coordinates() -> Coordinates:
    return Coordinates(latitude=settings.DEFAULT_LATITUDE, longitude=settings.DEFAULT_LONGITUDE)


def _group_response(group: Group, now: int) -> GroupResponse:
    return GroupResponse(**group.model_dump(), time_left=format_time_left(group.expires_at, now))


def spark_http_error(error: SparkError) -> HTTPException:
    """Map a core error onto an HTTP error; the error code rides in X-Error-Code."""
    return HTTPException(
        status_code=error.http_status,
        detail=error.message,
        headers={"X-Error-Code": error.code},
    )


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(request: Request, response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only while the expiry sweeper runs.

    Otherwise returns 503 (Service Unavailable).
    """
    sweeper: Optional[ExpirySweeper] = getattr(request.app.state, "sweeper", None)
    if sweeper is None or not sweeper.is_running:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Expiry sweeper not running"
        )

    return HealthResponse(status="ready", live_groups=sweeper.store.stats()["live_groups"])


# =============================================================================
# Group Routes
# =============================================================================

@app.post(
    "/groups",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_group(
    request: Request,
    body: CreateGroupRequest,
    store: SparkStore = Depends(get_store),
    provider: Optional[LocationProvider] = Depends(get_location_provider),
) -> GroupResponse:
    """
    Create a spark that expires 24 hours from now.

    When the body carries no coordinates the device location is used,
    falling back to the configured reference point.
    """
    coordinates = body.coordinates() or resolve_location(provider, default_coordinates())

    group = store.create_group(
        coordinates,
        name=body.name,
        anonymous_allowed=body.anonymous_allowed,
        icebreaker=body.icebreaker,
    )
    log_spark_data(request, group_id=group.id, result="created")

    return _group_response(group, store.now())


@app.get(
    "/groups/nearby",
    response_model=NearbyGroupsResponse,
)
async def list_nearby(
    lat: Annotated[Optional[float], Query(ge=-90, le=90, description="Origin latitude")] = None,
    lng: Annotated[Optional[float], Query(ge=-180, le=180, description="Origin longitude")] = None,
    radius_km: Annotated[Optional[float], Query(ge=0, description="Search radius in km")] = None,
    store: SparkStore = Depends(get_store),
    provider: Optional[LocationProvider] = Depends(get_location_provider),
) -> NearbyGroupsResponse:
    """
    List live sparks near the origin, soonest-to-expire first.

    Query Parameters:
        - lat, lng: origin; the device location (or fallback) when omitted
        - radius_km: search radius (default from settings)
    """
    if lat is not None and lng is not None:
        origin = Coordinates(latitude=lat, longitude=lng)
    else:
        origin = resolve_location(provider, default_coordinates())

    if radius_km is None:
        radius_km = settings.DEFAULT_RADIUS_KM

    groups = store.list_nearby(origin, radius_km)
    now = store.now()

    logger.info(f"GET /groups/nearby: returned {len(groups)} groups (radius_km={radius_km})")

    return NearbyGroupsResponse(
        data=[
            NearbyGroupResponse(
                **_group_response(g, now).model_dump(),
                distance=format_distance(g, origin),
            )
            for g in groups
        ],
        latitude=origin.latitude,
        longitude=origin.longitude,
        radius_km=radius_km,
    )


@app.get(
    "/groups/{group_id}",
    response_model=GroupResponse,
    responses={404: {"model": ErrorResponse, "description": "Group not found or expired"}},
)
async def get_group(group_id: str, store: SparkStore = Depends(get_store)) -> GroupResponse:
    group = store.get_group(group_id)
    if group is None:
        raise spark_http_error(GroupNotFound(group_id))
    return _group_response(group, store.now())


# =============================================================================
# Message Routes
# =============================================================================

@app.post(
    "/groups/{group_id}/messages",
    response_model=PostMessageResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Anonymous posting not permitted"},
        404: {"model": ErrorResponse, "description": "Group not found or expired"},
    }
)
async def post_message(
    group_id: str,
    body: PostMessageRequest,
    request: Request,
    response: Response,
    store: SparkStore = Depends(get_store),
) -> PostMessageResponse:
    """
    Post a message to a live spark.

    - Blank text is ignored (200, status "ignored")
    - Anonymous posts to a named-only spark are refused (403)
    - Unknown or expired sparks return 404
    """
    try:
        message = store.post_message(
            group_id,
            body.text,
            anonymous=body.anonymous,
            handle=body.handle,
        )
    except PolicyViolation as e:
        log_spark_data(request, group_id=group_id, result="policy_violation")
        raise spark_http_error(e)
    except GroupNotFound as e:
        log_spark_data(request, group_id=group_id, result="not_found")
        raise spark_http_error(e)

    if message is None:
        log_spark_data(request, group_id=group_id, result="ignored")
        return PostMessageResponse(status="ignored")

    log_spark_data(request, group_id=group_id, result="created")
    response.status_code = status.HTTP_201_CREATED
    return PostMessageResponse(
        status="created",
        message=MessageResponse.model_validate(message),
    )


@app.get(
    "/groups/{group_id}/messages",
    response_model=MessagesListResponse,
)
async def list_messages(group_id: str, store: SparkStore = Depends(get_store)) -> MessagesListResponse:
    """
    Messages of a spark in posting order.

    Unknown or expired sparks yield an empty list, never an error.
    """
    messages = store.get_messages(group_id)
    logger.debug(f"GET /groups/{group_id}/messages: {len(messages)} messages")

    return MessagesListResponse(
        data=[MessageResponse.model_validate(m) for m in messages],
        total=len(messages),
    )


# =============================================================================
# Icebreakers Route
# =============================================================================

@app.get("/icebreakers", response_model=IcebreakersResponse)
async def icebreakers() -> IcebreakersResponse:
    """Built-in opening prompts plus one random suggestion."""
    return IcebreakersResponse(prompts=list(ICEBREAKERS), suggestion=random_icebreaker())


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )

"""
WebSocket routes: live hostel pages, search-as-you-type and map tracking
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ...application.debounce import Debouncer
from ...application.location import LocationTracker
from ...config import settings
from ...container import Container
from ...domain.models import UserProfile
from ...errors import AuthError, HostelFinderError
from ...geo import Bounds
from ...schemas import BoundsSchema, ErrorResponse, HostelResponse, ReviewResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

POLICY_VIOLATION = 4401


def _container(websocket: WebSocket) -> Container:
    return websocket.app.state.container


async def _optional_user(websocket: WebSocket, container: Container) -> Optional[UserProfile]:
    token = websocket.query_params.get("token")
    if not token:
        return None
    return await container.auth.authenticate(token)


async def _pump(websocket: WebSocket, queue: "asyncio.Queue[Dict[str, Any]]") -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


@router.websocket("/ws/hostels/{hostel_id}")
async def hostel_updates(websocket: WebSocket, hostel_id: str):
    """
    Live hostel record and newest reviews

    With ``?token=`` the caller's favorite status is streamed as well.
    """
    container = _container(websocket)
    await websocket.accept()
    try:
        user = await _optional_user(websocket, container)
    except AuthError as e:
        await websocket.close(code=POLICY_VIOLATION, reason=e.message)
        return

    view_id = f"ws:{uuid.uuid4().hex}"
    queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

    def on_hostel(hostel):
        data = HostelResponse.from_hostel(hostel).model_dump(mode="json") if hostel else None
        queue.put_nowait({"type": "hostel", "data": data})

    def on_reviews(reviews):
        queue.put_nowait({
            "type": "reviews",
            "data": [ReviewResponse.model_validate(r).model_dump(mode="json") for r in reviews],
        })

    registry = container.subscriptions
    registry.subscribe(view_id, f"hostel:{hostel_id}", lambda: container.hostels.watch(hostel_id, on_hostel))
    registry.subscribe(view_id, f"reviews:{hostel_id}", lambda: container.reviews.watch(hostel_id, on_reviews))
    if user is not None:
        registry.subscribe(
            view_id,
            f"favorite:{user.id}:{hostel_id}",
            lambda: container.favorites.watch(
                user.id, hostel_id, lambda favorited: queue.put_nowait({"type": "favorite", "data": favorited})
            ),
        )

    sender = asyncio.create_task(_pump(websocket, queue))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"{view_id} disconnected")
    finally:
        sender.cancel()
        registry.release_view(view_id)


@router.websocket("/ws/search")
async def search_as_you_type(websocket: WebSocket):
    """
    Debounced search

    Send ``{"term": "..."}`` on every keystroke; results arrive for the
    last term once typing pauses.
    """
    container = _container(websocket)
    await websocket.accept()
    try:
        user = await _optional_user(websocket, container)
    except AuthError as e:
        await websocket.close(code=POLICY_VIOLATION, reason=e.message)
        return

    async def run_search(term: str) -> None:
        try:
            results = await container.search.search(term)
        except HostelFinderError as e:
            await websocket.send_json({"type": "error", **ErrorResponse.from_exception(e).model_dump()})
            return
        if user is not None and results:
            store = await container.preferences.get(user.id)
            store.add_recent_search(term)
        await websocket.send_json({
            "type": "results",
            "term": term,
            "items": [HostelResponse.from_hostel(h).model_dump(mode="json") for h in results],
        })

    debouncer = Debouncer(run_search, settings.SEARCH_DEBOUNCE)
    try:
        while True:
            message = await websocket.receive_json()
            debouncer(str(message.get("term", "")))
    except WebSocketDisconnect:
        pass
    finally:
        debouncer.cancel()


@router.websocket("/ws/map")
async def map_tracking(websocket: WebSocket):
    """
    Position tracking and viewport queries

    Client messages:
    - ``{"type": "position", "latitude", "longitude", "accuracy"}``
    - ``{"type": "error", "code": 1|2|3}`` from the positioning API
    - ``{"type": "unsupported"}``
    - ``{"type": "viewport", "north", "south", "east", "west"}``
    """
    container = _container(websocket)
    await websocket.accept()
    tracker = LocationTracker()

    try:
        while True:
            message = await websocket.receive_json()
            kind = message.get("type")
            if kind == "position":
                update = tracker.update_position(
                    float(message["latitude"]), float(message["longitude"]), message.get("accuracy")
                )
                reply: Dict[str, Any] = {
                    "type": "location",
                    "latitude": update.location.latitude,
                    "longitude": update.location.longitude,
                    "area": update.location.area,
                    "moved": update.moved,
                    "permission": tracker.permission.value,
                }
                if update.moved:
                    hostels = await container.hostels.nearby(update.location.point)
                    reply["nearby"] = [HostelResponse.from_hostel(h).model_dump(mode="json") for h in hostels]
                await websocket.send_json(reply)
            elif kind in ("error", "unsupported"):
                error = tracker.report_error(0 if kind == "unsupported" else int(message.get("code", 2)))
                await websocket.send_json({
                    "type": "location_error",
                    "kind": error.kind.value,
                    "message": error.message,
                    "retryable": error.retryable,
                    "permission": tracker.permission.value,
                })
            elif kind == "viewport":
                bounds = Bounds(
                    north=float(message["north"]), south=float(message["south"]),
                    east=float(message["east"]), west=float(message["west"]),
                )
                hostels = await container.hostels.in_bounds(bounds)
                fitted = container.hostels.fit_bounds(hostels)
                await websocket.send_json({
                    "type": "hostels",
                    "items": [HostelResponse.from_hostel(h).model_dump(mode="json") for h in hostels],
                    "bounds": BoundsSchema.model_validate(fitted).model_dump() if fitted else None,
                })
            else:
                await websocket.send_json({"type": "error", "error": "unknown_message", "detail": str(kind)})
    except WebSocketDisconnect:
        pass
    finally:
        tracker.stop()

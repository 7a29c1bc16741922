"""Mission sync API endpoints.

Created: 2026-02-14

FastAPI router over the engine's read contract and commands:
- Missions: board, active list, archived list, create, complete
- Feed: recent activity (relative times computed at read time)
- Agents: liveness listing and single-agent lookup
- Health
- /ws: live event stream (one JSON envelope per frame)

Mount this router to your FastAPI app:
    from missionsync.api import router
    app.include_router(router, prefix="/api")
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from missionsync.engine import ArchivalError, MissionNotFoundError, get_sync_engine
from missionsync.models import MissionStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Mission Sync"])


# ============================================================================
# Request Models
# ============================================================================


class CreateMissionRequest(BaseModel):
    """Request to create a new mission document."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="")
    assigned_to: str | None = None
    priority: str = Field(default="medium")
    status: str = Field(default="queue")
    tags: list[str] = Field(default_factory=list)


# ============================================================================
# Mission Endpoints
# ============================================================================


@router.get("/missions")
async def get_board() -> dict[str, Any]:
    """Missions grouped by column (queue, progress, review, done)."""
    return await get_sync_engine().get_board()


@router.get("/missions/active")
async def list_active_missions(status: str | None = None) -> dict[str, Any]:
    """Cached active missions, most recently updated first."""
    try:
        status_enum = MissionStatus(status) if status else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")

    missions = await get_sync_engine().list_active_missions(status_enum)
    return {"missions": [m.to_dict() for m in missions], "count": len(missions)}


@router.get("/missions/archived")
async def list_archived_missions(limit: int = Query(default=10, ge=0, le=500)) -> dict[str, Any]:
    """Most recently archived missions."""
    missions = await get_sync_engine().list_archived_missions(limit)
    return {"missions": [m.to_dict() for m in missions], "count": len(missions)}


@router.post("/missions", status_code=201)
async def create_mission(request: CreateMissionRequest) -> dict[str, Any]:
    """Create a mission document in the active area."""
    try:
        mission = await get_sync_engine().create_mission(
            title=request.title,
            description=request.description,
            assigned_to=request.assigned_to,
            priority=request.priority,
            status=request.status,
            tags=request.tags,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        logger.error("Error creating mission: %s", e)
        raise HTTPException(status_code=500, detail="Failed to create mission")

    return {"mission": mission.to_dict()}


@router.post("/missions/{storage_key}/complete")
async def complete_mission(storage_key: str) -> dict[str, Any]:
    """Mark a mission done and move it to the archive."""
    try:
        mission = await get_sync_engine().complete_mission(storage_key)
    except MissionNotFoundError:
        raise HTTPException(status_code=404, detail="Mission not found")
    except ArchivalError as e:
        logger.error("Error completing mission: %s", e)
        raise HTTPException(status_code=500, detail="Failed to complete mission")

    return {"success": True, "id": mission.storage_key, "mission": mission.to_dict()}


# ============================================================================
# Feed & Agents
# ============================================================================


@router.get("/feed")
async def get_feed(limit: int = Query(default=30, ge=0, le=500)) -> dict[str, Any]:
    """Recent activity, newest first."""
    return {"feed": get_sync_engine().get_feed(limit)}


@router.get("/agents")
async def list_agents() -> dict[str, Any]:
    """All known agents, working first."""
    agents = get_sync_engine().list_agents()
    return {"agents": [a.to_dict() for a in agents]}


@router.get("/agents/{agent_id}")
async def get_agent(agent_id: str) -> dict[str, Any]:
    """Liveness of a single agent."""
    return {"agent": get_sync_engine().get_agent_liveness(agent_id).to_dict()}


@router.get("/health")
async def health() -> dict[str, Any]:
    return get_sync_engine().get_health()


# ============================================================================
# Live stream
# ============================================================================


@router.websocket("/ws")
async def event_stream(websocket: WebSocket) -> None:
    """Push every engine event to this connection until it closes."""
    await websocket.accept()
    engine = get_sync_engine()
    if not await engine.connect(websocket):
        return

    try:
        # Inbound frames are ignored; receiving detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        engine.disconnect(websocket)

"""
Streams router: CRUD plus manual start/stop of broadcasts.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime

from streamcraft.database import get_db
from streamcraft.exceptions import StreamError
from streamcraft.routers.deps import get_supervisor
from streamcraft.services.broadcast_supervisor import BroadcastSupervisor
from streamcraft.services.stream_service import StreamService

router = APIRouter(prefix="/streams", tags=["Streams"])


class ScheduleSlot(BaseModel):
    """Satu slot waktu dalam schedule"""
    id: Optional[str] = None
    startTime: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    duration: int = Field(60, gt=0)
    weekdays: List[int] = []


class ScheduleRequest(BaseModel):
    type: Literal["manual", "once", "daily", "weekly"] = "manual"
    schedules: List[ScheduleSlot] = []
    date: Optional[str] = None


class StreamRequest(BaseModel):
    """Request model untuk create / update stream"""
    user_id: Optional[str] = None
    title: str
    description: Optional[str] = ""
    rtmp_url: Optional[str] = ""
    stream_key: Optional[str] = ""
    platform: Optional[str] = None
    videos: List[int] = []
    loop: bool = False
    schedule: Optional[ScheduleRequest] = None
    is_scheduled: bool = False
    type: Optional[Literal["manual", "scheduled"]] = None
    scheduled_start_time: Optional[datetime] = None
    scheduled_end_time: Optional[datetime] = None


def _service(db: Session, supervisor: BroadcastSupervisor) -> StreamService:
    return StreamService(db, supervisor)


@router.post("")
def create_stream(
    request: StreamRequest,
    db: Session = Depends(get_db),
    supervisor: BroadcastSupervisor = Depends(get_supervisor)
):
    """Create stream beserta urutan videonya"""
    if not request.user_id:
        raise HTTPException(400, "user_id is required")

    try:
        stream = _service(db, supervisor).create(request.model_dump(exclude_none=True), request.user_id)
    except StreamError as e:
        raise HTTPException(e.status_code, str(e))

    return {"success": True, "message": "Stream created successfully", "data": stream}


@router.get("/user/{user_id}")
def list_user_streams(
    user_id: str,
    db: Session = Depends(get_db),
    supervisor: BroadcastSupervisor = Depends(get_supervisor)
):
    streams = _service(db, supervisor).list_for_user(user_id)
    return {"success": True, "data": streams}


@router.get("/status")
def get_running_streams(supervisor: BroadcastSupervisor = Depends(get_supervisor)):
    """IDs of every stream with a running broadcast"""
    running = supervisor.list_running()
    return {
        "success": True,
        "data": {
            "running": running,
            "count": len(running),
            "details": [supervisor.get_status(stream_id) for stream_id in running]
        }
    }


@router.get("/{stream_id}")
def get_stream(
    stream_id: int,
    db: Session = Depends(get_db),
    supervisor: BroadcastSupervisor = Depends(get_supervisor)
):
    stream = _service(db, supervisor).get(stream_id)
    if not stream:
        raise HTTPException(404, f"Stream {stream_id} not found")

    stream["is_running"] = supervisor.is_running(stream_id)
    return {"success": True, "data": stream}


@router.put("/{stream_id}")
def update_stream(
    stream_id: int,
    request: StreamRequest,
    db: Session = Depends(get_db),
    supervisor: BroadcastSupervisor = Depends(get_supervisor)
):
    try:
        stream = _service(db, supervisor).update(stream_id, request.model_dump(exclude_none=True))
    except StreamError as e:
        raise HTTPException(e.status_code, str(e))

    if not stream:
        raise HTTPException(404, f"Stream {stream_id} not found")

    return {"success": True, "message": "Stream updated successfully", "data": stream}


@router.delete("/{stream_id}")
def delete_stream(
    stream_id: int,
    db: Session = Depends(get_db),
    supervisor: BroadcastSupervisor = Depends(get_supervisor)
):
    if not _service(db, supervisor).delete(stream_id):
        raise HTTPException(404, f"Stream {stream_id} not found")

    return {"success": True, "message": "Stream deleted successfully"}


@router.post("/{stream_id}/start")
def start_stream(stream_id: int, supervisor: BroadcastSupervisor = Depends(get_supervisor)):
    """
    Start broadcast secara manual.

    Raises:
        HTTPException: 404 stream missing, 409 already running,
            429 concurrency limit, 400 no videos / credentials, 500 spawn failure
    """
    try:
        process = supervisor.start(stream_id)
    except StreamError as e:
        raise HTTPException(e.status_code, str(e))

    return {
        "success": True,
        "message": f"Stream {stream_id} started successfully",
        "data": {"stream_id": stream_id, "pid": process.pid}
    }


@router.post("/{stream_id}/stop")
def stop_stream(stream_id: int, supervisor: BroadcastSupervisor = Depends(get_supervisor)):
    """Request graceful stop. Not running is not an error."""
    stopped = supervisor.stop(stream_id)

    message = f"Stop signal sent to stream {stream_id}" if stopped else f"Stream {stream_id} is not running"
    return {"success": True, "message": message, "data": {"stream_id": stream_id, "was_running": stopped}}


@router.get("/{stream_id}/logs")
def get_stream_logs(
    stream_id: int,
    lines: int = Query(50, ge=1, le=5000),
    supervisor: BroadcastSupervisor = Depends(get_supervisor)
):
    logs = supervisor.get_log_tail(stream_id, lines)
    if logs is None:
        raise HTTPException(404, f"No logs found for stream {stream_id}")

    return {"success": True, "data": {"stream_id": stream_id, "logs": logs}}

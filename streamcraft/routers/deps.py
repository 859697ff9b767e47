"""
Shared router dependencies.

The supervisor and scheduler are built once at startup and live on app.state.
"""
from fastapi import Request

from streamcraft.services.broadcast_supervisor import BroadcastSupervisor
from streamcraft.services.scheduler import StreamScheduler


def get_supervisor(request: Request) -> BroadcastSupervisor:
    """Broadcast supervisor dependency"""
    return request.app.state.supervisor


def get_scheduler(request: Request) -> StreamScheduler:
    return request.app.state.scheduler

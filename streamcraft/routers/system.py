"""
System status endpoints.
"""
from fastapi import APIRouter, Depends

from streamcraft.routers.deps import get_scheduler, get_supervisor
from streamcraft.services.broadcast_supervisor import BroadcastSupervisor
from streamcraft.services.scheduler import StreamScheduler
from streamcraft.services.system_service import get_system_stats

router = APIRouter(tags=["System"])


@router.get("/system/stats")
def system_stats(supervisor: BroadcastSupervisor = Depends(get_supervisor)):
    """CPU, memory, disk, network and active broadcast count"""
    return {"success": True, "data": get_system_stats(supervisor)}


@router.get("/scheduler/jobs")
def scheduler_jobs(scheduler: StreamScheduler = Depends(get_scheduler)):
    jobs = scheduler.get_jobs()
    return {"success": True, "data": {"total": len(jobs), "jobs": jobs}}

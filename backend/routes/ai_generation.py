"""
AI Generation API Routes

Submit generation jobs, check their status, and inspect queue health.
Generation itself happens in the worker pools; these endpoints never wait on it.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Depends, Request
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from backend.jobs.errors import JobAccessError, NotFoundError
from backend.jobs.status import get_job_status
from backend.jobs.submission import submit_job
from backend.jobs.system import JobSystem
from backend.queue.connection import redis_health_check
from backend.security import RequestContext, enforce_rate_limit, get_request_context, require_auth
from backend.utils.logging import api_logger as logger, get_log_buffer


router = APIRouter(prefix="/api/ai", tags=["ai-generation"])


# =============================================================================
# Request / Response Models
# =============================================================================

class SubmitJobRequest(BaseModel):
    """A generation request. The payload is validated against the job type's schema."""
    type: str = Field(..., min_length=1)
    payload: Dict[str, Any]


class SubmitJobResponse(BaseModel):
    """Returned with 202 as soon as the job is queued."""
    jobId: str
    status: str


# =============================================================================
# Dependencies
# =============================================================================

def get_job_system(request: Request) -> JobSystem:
    system: Optional[JobSystem] = getattr(request.app.state, "job_system", None)
    if system is None:
        raise HTTPException(
            status_code=503,
            detail="Generation service unavailable"
        )
    return system


# =============================================================================
# Routes
# =============================================================================

@router.post(
    "/jobs",
    status_code=202,
    response_model=SubmitJobResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def create_generation_job(
    body: SubmitJobRequest,
    ctx: RequestContext = Depends(get_request_context),
    system: JobSystem = Depends(get_job_system),
):
    """
    Queue a generation job.

    Returns 202 with the job id immediately. Payload validation errors are
    returned as 400 and nothing is queued.
    """
    try:
        handle = await submit_job(
            system,
            body.type,
            body.payload,
            tenant_id=ctx.tenant_id,
            user_id=ctx.user_id,
        )
    except (RedisError, ConnectionError) as e:
        logger.error(f"Failed to enqueue generation job: {e}", job_type=body.type)
        raise HTTPException(
            status_code=503,
            detail="Generation queue unavailable"
        )

    return SubmitJobResponse(**handle.to_dict())


@router.get("/jobs/{job_id}")
async def get_generation_job(
    job_id: str,
    ctx: RequestContext = Depends(get_request_context),
    system: JobSystem = Depends(get_job_system),
):
    """Get the status, result or error of a generation job."""
    try:
        view = await get_job_status(system, job_id, tenant_id=ctx.tenant_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except JobAccessError:
        raise HTTPException(status_code=403, detail="Not your job")

    return view.to_dict()


@router.get("/queues", dependencies=[require_auth])
async def get_queue_overview(system: JobSystem = Depends(get_job_system)):
    """Queue depths, job record counts and recent errors for operators."""
    try:
        queues = redis_health_check(system.redis, system.queues.values())
    except (ValueError, ConnectionError) as e:
        queues = {"status": "unavailable", "connected": False, "error": str(e)}

    return {
        "queues": queues,
        "records": await system.store.get_queue_stats(),
        "recent_errors": get_log_buffer().get_errors(limit=20),
    }

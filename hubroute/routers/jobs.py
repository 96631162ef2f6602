from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session
from typing import Optional

from ..auth import get_current_customer, get_current_hub
from ..database import get_db
from ..job_store import job_to_dict
from ..orchestrator import RoutingOrchestrator
from ..schemas import MilestoneRequest, SubmitJobRequest

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/submit")
def submit_job(
    request: SubmitJobRequest,
    as_draft: bool = False,
    db: Session = Depends(get_db),
    customer_id: str = Depends(get_current_customer),
):
    job = RoutingOrchestrator(db).submit_job(
        customer_id, request.part_request, request.hub_id,
        quote_id=request.quote_id, as_draft=as_draft,
    )
    return job_to_dict(job)


@router.get("/")
def list_jobs(
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
    customer_id: str = Depends(get_current_customer),
):
    """The caller's jobs, newest first."""
    jobs = RoutingOrchestrator(db).list_jobs(customer_id, status, skip, limit)
    return {"jobs": [job_to_dict(j) for j in jobs]}


@router.get("/{job_id}")
def get_job(
    job_id: str,
    db: Session = Depends(get_db),
    customer_id: str = Depends(get_current_customer),
):
    return job_to_dict(RoutingOrchestrator(db).get_job(customer_id, job_id))


@router.patch("/{job_id}")
def update_job(
    job_id: str,
    update: dict = Body(...),
    db: Session = Depends(get_db),
    customer_id: str = Depends(get_current_customer),
):
    return job_to_dict(RoutingOrchestrator(db).update_job(customer_id, job_id, update))


# --- Hub side: acknowledge, milestones, complete (hub operator token) ---

@router.post("/{job_id}/acknowledge")
def acknowledge_job(
    job_id: str,
    note: Optional[str] = Body(default=None, embed=True),
    db: Session = Depends(get_db),
    hub_id: str = Depends(get_current_hub),
):
    """The assigned hub accepts a paid job and starts manufacturing."""
    return job_to_dict(RoutingOrchestrator(db).acknowledge(job_id, note, hub_id=hub_id))


@router.post("/{job_id}/milestones")
def add_milestone(
    job_id: str,
    request: MilestoneRequest,
    db: Session = Depends(get_db),
    hub_id: str = Depends(get_current_hub),
):
    job = RoutingOrchestrator(db).record_milestone(
        job_id, request.milestone, request.note, hub_id=hub_id
    )
    return job_to_dict(job)


@router.post("/{job_id}/complete")
def complete_job(
    job_id: str,
    note: Optional[str] = Body(default=None, embed=True),
    db: Session = Depends(get_db),
    hub_id: str = Depends(get_current_hub),
):
    return job_to_dict(RoutingOrchestrator(db).complete(job_id, note, hub_id=hub_id))

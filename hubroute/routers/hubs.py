from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from ..database import get_db
from ..hub_matcher import HaversineDistanceScorer, HubMatcher, supports
from ..job_store import JobStore
from ..orchestrator import RoutingOrchestrator
from ..schemas import CamelModel, GeoPoint, HubRequirements

router = APIRouter(prefix="/hubs", tags=["hubs"])


class MatchRequest(CamelModel):
    part_id: Optional[str] = None
    process: Optional[str] = None
    material: Optional[str] = None
    quantity: int = 1
    lead_time_requirement: Optional[int] = None
    location: Optional[GeoPoint] = None
    eligible_only: bool = False


@router.get("/")
def list_hubs(
    capability: Optional[str] = None,
    material: Optional[str] = None,
    db: Session = Depends(get_db),
):
    hubs = [
        h for h in JobStore(db).list_hubs()
        if supports(capability, h.capabilities) and supports(material, h.materials)
    ]
    return {"hubs": [h.model_dump(by_alias=True) for h in hubs]}


@router.post("/match")
def match_hubs(request: MatchRequest, db: Session = Depends(get_db)):
    """Rank certified hubs. Process and material default to the catalog part's."""
    store = JobStore(db)
    process, material = request.process, request.material
    if request.part_id:
        part = store.get_part(request.part_id)
        process = process or part.process
        material = material or part.material

    requirements = HubRequirements(
        process=process,
        material=material,
        quantity=request.quantity,
        lead_time_days=request.lead_time_requirement,
        location=request.location,
    )
    # Real distances only when the caller says where the part is going
    matcher = HubMatcher(HaversineDistanceScorer()) if request.location else HubMatcher()
    orchestrator = RoutingOrchestrator(db, matcher=matcher, store=store)
    matches = orchestrator.match(requirements)
    if request.eligible_only:
        matches = [m for m in matches if m.fully_compatible]
    return {
        "matches": [m.model_dump(by_alias=True) for m in matches],
        "total": len(matches),
    }

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from ..auth import get_current_customer
from ..database import get_db
from ..job_store import JobStore, quote_to_dict
from ..orchestrator import RoutingOrchestrator
from ..schemas import PartRequest, QuoteRequest

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/")
def list_parts(
    category: Optional[str] = None,
    search: Optional[str] = None,
    skip: int = 0,
    limit: int = 20,
    db: Session = Depends(get_db),
):
    parts = JobStore(db).list_parts(None if category == "all" else category)
    if search:
        needle = search.lower()
        parts = [
            p for p in parts
            if needle in p.name.lower() or needle in (p.description or "").lower()
        ]
    return {
        "items": [p.model_dump(by_alias=True) for p in parts[skip:skip + limit]],
        "total": len(parts),
        "skip": skip,
        "limit": limit,
    }


@router.get("/{part_id}")
def get_part(part_id: str, db: Session = Depends(get_db)):
    return JobStore(db).get_part(part_id).model_dump(by_alias=True)


@router.post("/{part_id}/quote")
def quote_part(
    part_id: str,
    request: QuoteRequest,
    db: Session = Depends(get_db),
    customer_id: str = Depends(get_current_customer),
):
    """Price the part and keep the quote so it can be accepted on submission."""
    part_request = PartRequest(part_id=part_id, **request.model_dump())
    record = RoutingOrchestrator(db).create_quote(customer_id, part_request)
    return quote_to_dict(record)

"""
Routing Orchestrator — composes pricing, hub matching and the job store.

submit_job:
    1. load the part template, price it (or accept a persisted quote)
    2. rank hubs; the requested hub must be in the eligible set
    3. one compare-and-set transaction: quote row + job (submitted) +
       first timeline entry + hub load bump

Nothing is written until steps 1-2 succeed, and the requested hub is never
swapped for another one.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from . import job_states, models
from .config import settings
from .errors import (
    HubIncompatibleError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    QuoteExpiredError,
)
from .hub_matcher import HubMatcher
from .job_store import JobStore
from .pricing_engine import PricingEngine
from .schemas import HubMatch, HubRequirements, JobUpdate, PartRequest, PartTemplate, Quote

logger = logging.getLogger("hubroute.orchestrator")

# Statuses a job patch may ask for. "paid" is reserved for the payment reconciler.
CUSTOMER_STATUSES = {job_states.SUBMITTED, job_states.CANCELLED}
HUB_STATUSES = {job_states.MANUFACTURING, job_states.COMPLETED}


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:20]}"


def quote_record(quote: Quote, customer_id: Optional[str]) -> models.Quote:
    return models.Quote(
        id=str(uuid.uuid4()),
        customer_id=customer_id,
        **quote.model_dump(exclude={"id"}),
    )


class RoutingOrchestrator:

    def __init__(self, db: Session, pricing: Optional[PricingEngine] = None,
                 matcher: Optional[HubMatcher] = None, store: Optional[JobStore] = None):
        self.db = db
        self.pricing = pricing or PricingEngine()
        self.matcher = matcher or HubMatcher()
        self.store = store or JobStore(db)

    # --- Quoting and matching ---

    def price(self, request: PartRequest, part: Optional[PartTemplate] = None) -> Quote:
        part = part or self.store.get_part(request.part_id)
        return self.pricing.compute_quote(
            part,
            request.quantity,
            request.material,
            request.manufacturability_score,
            parameters=request.parameters,
        )

    def create_quote(self, customer_id: Optional[str], request: PartRequest) -> models.Quote:
        """Price and persist — the returned quote can later be accepted by submit_job."""
        quote = self.price(request)

        def operation():
            record = quote_record(quote, customer_id)
            self.db.add(record)
            return record

        record = self.store.run(operation, "create quote")
        logger.info("Quote %s: %d x %s in %s = %.2f %s", record.id, record.quantity,
                    record.part_id, record.material, record.total_price, record.currency)
        return record

    def requirements_for(self, part: PartTemplate, quote: Quote, location=None) -> HubRequirements:
        return HubRequirements(
            process=part.process,
            material=quote.material,
            quantity=quote.quantity,
            lead_time_days=quote.lead_time_days,
            location=location,
        )

    def match(self, requirements: HubRequirements) -> List[HubMatch]:
        return self.matcher.match_hubs(requirements, self.store.list_hubs())

    # --- Submission ---

    def submit_job(self, customer_id: str, request: PartRequest, hub_id: str,
                   quote_id: Optional[str] = None, as_draft: bool = False) -> models.Job:
        part = self.store.get_part(request.part_id)
        now = datetime.utcnow()

        if quote_id:
            quote = Quote.model_validate(self._accepted_quote(customer_id, quote_id, request, now))
        else:
            quote = self.price(request, part)

        requirements = self.requirements_for(part, quote)
        eligible = self.matcher.eligible(requirements, self.store.list_hubs())
        if not any(m.hub_id == hub_id for m in eligible):
            raise HubIncompatibleError(
                "Chosen hub cannot take this job",
                {"hub_id": hub_id, "eligible": [m.hub_id for m in eligible]},
            )

        design_location = request.design_location.uri if request.design_location else None
        status = job_states.DRAFT if as_draft else job_states.SUBMITTED

        def operation():
            if quote_id:
                record = self.db.get(models.Quote, quote_id)
            else:
                record = quote_record(quote, customer_id)
                self.db.add(record)
            job = models.Job(
                id=new_job_id(),
                customer_id=customer_id,
                quote=record,
                hub_id=hub_id,
                status=status,
                payment_status="unpaid",
                estimated_completion=now + timedelta(days=quote.lead_time_days),
                design_location=design_location,
                created_at=now,
            )
            self.db.add(job)
            job_states.append_timeline(job, status, now=now)
            if not as_draft:
                self.store.adjust_hub_load(hub_id, settings.HUB_LOAD_INCREMENT)
            return job

        job = self.store.run(operation, "submit job")
        logger.info("Job %s %s for customer %s at hub %s (%.2f %s)", job.id, status,
                    customer_id, hub_id, quote.total_price, quote.currency)
        return job

    def _accepted_quote(self, customer_id: str, quote_id: str, request: PartRequest,
                        now: datetime) -> models.Quote:
        record = self.store.get_quote(quote_id)
        if record.customer_id not in (None, customer_id):
            raise NotFoundError("Quote not found", {"quote_id": quote_id})
        if record.valid_until < now:
            raise QuoteExpiredError(
                "Quote has expired — request a new quote",
                {"quote_id": quote_id, "valid_until": record.valid_until.isoformat()},
            )
        requested_material = (request.material or record.material).lower()
        if (
            record.part_id != request.part_id
            or record.quantity != request.quantity
            or (requested_material != record.material.lower() and not record.material_fallback)
        ):
            raise InvalidInputError(
                "Quote does not match the part request",
                {"quote_id": quote_id},
            )
        return record

    # --- Job mutation surface ---

    def get_job(self, customer_id: str, job_id: str) -> models.Job:
        return self.store.get_for_customer(customer_id, job_id)

    def list_jobs(self, customer_id: str, status: Optional[str] = None,
                  skip: int = 0, limit: int = 50) -> List[models.Job]:
        return self.store.list_for_customer(customer_id, status, skip, limit)

    def update_job(self, customer_id: Optional[str], job_id: str, patch,
                   hub_id: Optional[str] = None) -> models.Job:
        """
        Whitelisted mutation. `patch` is a JobUpdate or its raw camelCase dict.

        customer_id set: the customer's own job; status may only go to
        submitted (from draft) or cancelled.
        customer_id None: hub/operator context (optionally scoped to hub_id);
        manufacturing and completed are reachable only from here.
        """
        if isinstance(patch, dict):
            try:
                patch = JobUpdate.model_validate(patch)
            except ValidationError as e:
                raise InvalidInputError(
                    "Only status, note, estimatedCompletion and trackingNumber can be changed",
                    {"fields": [".".join(str(p) for p in err["loc"]) for err in e.errors()]},
                )
        fields = patch.model_dump(exclude_unset=True)
        status = fields.pop("status", None)
        note = fields.pop("note", None)

        if status == job_states.PAID:
            raise InvalidTransitionError(
                "Jobs become paid through payment verification only", {"job_id": job_id}
            )
        if status is not None and status not in CUSTOMER_STATUSES | HUB_STATUSES:
            raise InvalidInputError(f"Unknown job status: {status}", {"status": status})
        if customer_id is not None and status in HUB_STATUSES:
            raise InvalidTransitionError(
                f"Only the assigned hub can move a job to '{status}'",
                {"job_id": job_id, "status": status},
            )
        if note and status is None:
            raise InvalidInputError("A note must accompany a status change", {"job_id": job_id})

        def operation():
            job = self.store.load(job_id, customer_id, hub_id)
            for field, value in fields.items():
                setattr(job, field, value)
            moved = False
            if status is not None:
                moved = self._move(job, status, note)
            if fields and not moved:
                job_states.touch(job)
            return job

        job = self.store.run(operation, f"update job {job_id}")
        changed = sorted(patch.model_dump(exclude_unset=True))
        logger.info("Job %s updated (%s), now %s", job_id, ", ".join(changed), job.status)
        return job

    def _move(self, job: models.Job, target: str, note: Optional[str]) -> bool:
        previous = job.status
        if target == job_states.SUBMITTED and previous == job_states.DRAFT:
            if job.quote is not None and job.quote.valid_until < datetime.utcnow():
                raise QuoteExpiredError("Quote has expired — request a new quote",
                                        {"job_id": job.id, "quote_id": job.quote_id})
        if not job_states.apply_transition(job, target, note):
            return False

        if job.hub_id:
            if target == job_states.SUBMITTED:
                self.store.adjust_hub_load(job.hub_id, settings.HUB_LOAD_INCREMENT)
            elif target in job_states.TERMINAL_STATUSES and previous != job_states.DRAFT:
                hub = self.store.adjust_hub_load(job.hub_id, -settings.HUB_LOAD_INCREMENT)
                if hub is not None and target == job_states.COMPLETED:
                    hub.completed_jobs = (hub.completed_jobs or 0) + 1
        return True

    # --- Hub side (operator context) ---

    def acknowledge(self, job_id: str, note: Optional[str] = None,
                    hub_id: Optional[str] = None) -> models.Job:
        """Hub accepted the paid job — manufacturing starts."""
        return self.update_job(None, job_id, JobUpdate(status=job_states.MANUFACTURING, note=note),
                               hub_id=hub_id)

    def complete(self, job_id: str, note: Optional[str] = None,
                 hub_id: Optional[str] = None) -> models.Job:
        return self.update_job(None, job_id, JobUpdate(status=job_states.COMPLETED, note=note),
                               hub_id=hub_id)

    def record_milestone(self, job_id: str, milestone: str, note: Optional[str] = None,
                         hub_id: Optional[str] = None) -> models.Job:
        def operation():
            job = self.store.load(job_id, hub_id=hub_id)
            job_states.record_milestone(job, milestone, note)
            return job

        return self.store.run(operation, f"milestone {milestone} on {job_id}")

    # --- Customer side ---

    def cancel(self, customer_id: Optional[str], job_id: str, note: Optional[str] = None) -> models.Job:
        return self.update_job(customer_id, job_id, JobUpdate(status=job_states.CANCELLED, note=note))

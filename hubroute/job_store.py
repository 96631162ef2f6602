"""
Job Store — the single source of truth for jobs.

Every write is a read-modify-write cycle run through JobStore.run():

    1. the operation re-reads what it needs from the session
    2. mutates ORM objects (jobs, hubs and payments carry version_id_col)
    3. commit — SQLAlchemy issues UPDATE ... WHERE version = :seen

A lost compare-and-set (StaleDataError) or a duplicate ledger insert
(IntegrityError) rolls back and re-runs the whole cycle; after
WRITE_RETRY_ATTEMPTS it surfaces as ConflictError. Transient database errors
are retried with exponential backoff, then surface as DataUnavailableError.
Retries are driven by tenacity; business errors (RoutingError) are never retried.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from . import models
from .config import settings
from .errors import ConflictError, DataUnavailableError, JobNotFoundError, NotFoundError
from .schemas import HubProfile, PartTemplate, Quote

logger = logging.getLogger("hubroute.job_store")

T = TypeVar("T")

RETRYABLE_ERRORS = (StaleDataError, IntegrityError, OperationalError)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class JobStore:

    def __init__(self, db: Session, attempts: Optional[int] = None, backoff: Optional[float] = None):
        self.db = db
        self.attempts = attempts or settings.WRITE_RETRY_ATTEMPTS
        self.backoff = settings.WRITE_RETRY_BACKOFF_SECONDS if backoff is None else backoff
        self._backoff = wait_exponential(multiplier=self.backoff, min=0, max=max(self.backoff, 0) * 16)

    # --- Reads ---

    def get(self, job_id: str) -> models.Job:
        job = self._read(lambda: self.db.get(models.Job, job_id))
        if job is None:
            raise JobNotFoundError("Job not found", {"job_id": job_id})
        return job

    def load(self, job_id: str, customer_id: Optional[str] = None,
             hub_id: Optional[str] = None) -> models.Job:
        """Unwrapped read for use inside run() — database errors stay retryable there."""
        job = self.db.get(models.Job, job_id)
        if (
            job is None
            or (customer_id is not None and job.customer_id != customer_id)
            or (hub_id is not None and job.hub_id != hub_id)
        ):
            raise JobNotFoundError("Job not found", {"job_id": job_id})
        return job

    def get_for_customer(self, customer_id: str, job_id: str) -> models.Job:
        """Foreign jobs are reported exactly like missing ones."""
        job = self.get(job_id)
        if job.customer_id != customer_id:
            raise JobNotFoundError("Job not found", {"job_id": job_id})
        return job

    def list_for_customer(self, customer_id: str, status: Optional[str] = None,
                          skip: int = 0, limit: int = 50) -> List[models.Job]:
        def query():
            q = self.db.query(models.Job).filter(models.Job.customer_id == customer_id)
            if status:
                q = q.filter(models.Job.status == status)
            return q.order_by(models.Job.created_at.desc()).offset(skip).limit(limit).all()
        return self._read(query)

    def get_part(self, part_id: str) -> PartTemplate:
        part = self._read(lambda: self.db.get(models.CatalogPart, part_id))
        if part is None:
            raise NotFoundError("Catalog part not found", {"part_id": part_id})
        return PartTemplate.model_validate(part)

    def list_parts(self, category: Optional[str] = None) -> List[PartTemplate]:
        def query():
            q = self.db.query(models.CatalogPart)
            if category:
                q = q.filter(models.CatalogPart.category == category)
            return q.order_by(models.CatalogPart.name).all()
        return [PartTemplate.model_validate(p) for p in self._read(query)]

    def list_hubs(self) -> List[HubProfile]:
        hubs = self._read(lambda: self.db.query(models.Hub).order_by(models.Hub.id).all())
        return [HubProfile.model_validate(h) for h in hubs]

    def get_quote(self, quote_id: str) -> models.Quote:
        quote = self._read(lambda: self.db.get(models.Quote, quote_id))
        if quote is None:
            raise NotFoundError("Quote not found", {"quote_id": quote_id})
        return quote

    def _read(self, query: Callable[[], T]) -> T:
        try:
            return query()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Database read failed: %s", e)
            raise DataUnavailableError("Job store is unavailable", {"reason": str(e)}) from e

    # --- Writes ---

    def run(self, operation: Callable[[], T], label: str = "write") -> T:
        """Run a read-modify-write operation under compare-and-set with bounded retries."""
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=self._wait,
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=lambda state: self._log_retry(label, state),
        )
        try:
            for attempt in retrying:
                with attempt:
                    try:
                        result = operation()
                        self.db.commit()
                    except Exception:
                        self.db.rollback()
                        raise
        except RetryError as e:
            last_error = e.last_attempt.exception()
            if isinstance(last_error, OperationalError):
                logger.error("%s gave up after %d attempts: %s", label, self.attempts, last_error)
                raise DataUnavailableError(
                    f"{label} failed — database unavailable",
                    {"attempts": self.attempts, "reason": str(last_error)},
                ) from last_error
            logger.warning("%s lost every concurrent update (%d attempts)", label, self.attempts)
            raise ConflictError(
                f"{label} failed — concurrent updates kept winning",
                {"attempts": self.attempts},
            ) from last_error
        return result

    def _wait(self, retry_state: RetryCallState) -> float:
        # lost races re-run at once; only transient database errors back off
        if isinstance(retry_state.outcome.exception(), OperationalError):
            return self._backoff(retry_state)
        return 0.0

    def _log_retry(self, label: str, retry_state: RetryCallState):
        error = retry_state.outcome.exception()
        reason = "hit a transient database error" if isinstance(error, OperationalError) \
            else "lost a concurrent update"
        logger.warning("%s %s (attempt %d/%d): %s",
                       label, reason, retry_state.attempt_number, self.attempts, error)

    def adjust_hub_load(self, hub_id: str, delta: float) -> Optional[models.Hub]:
        """Read-increment-write on hub.current_load, clamped to 0..1. Caller commits via run()."""
        hub = self.db.get(models.Hub, hub_id)
        if hub is None:
            return None
        hub.current_load = round(min(1.0, max(0.0, (hub.current_load or 0.0) + delta)), 4)
        return hub


# --- Serialization (camelCase JSON shape) ---

def quote_to_dict(quote: models.Quote) -> dict:
    data = Quote.model_validate(quote).model_dump(by_alias=True, mode="json")
    data["partName"] = quote.part.name if quote.part else None
    return data


def job_to_dict(job: models.Job) -> dict:
    return {
        "id": job.id,
        "customerId": job.customer_id,
        "status": job.status,
        "quoteId": job.quote_id,
        "quote": quote_to_dict(job.quote) if job.quote else None,
        "hubId": job.hub_id,
        "hubName": job.hub.name if job.hub else None,
        "payment": {
            "status": job.payment_status,
            "reference": job.payment_reference,
            "transactionId": job.payment_transaction_id,
            "amount": job.payment_amount,
            "currency": job.payment_currency,
            "verifiedAt": _iso(job.payment_verified_at),
        },
        "tracking": {
            "estimatedCompletion": _iso(job.estimated_completion),
            "trackingNumber": job.tracking_number,
            "timeline": [
                {"status": e.status, "timestamp": _iso(e.timestamp), "note": e.note}
                for e in job.timeline
            ],
        },
        "designLocation": job.design_location,
        "version": job.version,
        "createdAt": _iso(job.created_at),
        "updatedAt": _iso(job.updated_at),
    }

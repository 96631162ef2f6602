"""
Payment Reconciler — applies gateway-verified payment events to jobs.

Delivery is at-least-once (webhook retries, client polling after redirect),
so every event is applied idempotently, keyed by the gateway reference:

    ledger says        incoming      result
    ---------------    ----------    -------------------------------------
    (nothing/pending)  successful    amount check → job paid, ledger completed
    (nothing/pending)  failed        job.payment failed, job stays submitted
    (nothing)          pending       ledger + job.payment pending
    completed          successful    no-op, current job returned
    failed             failed        no-op, current job returned
    completed/failed   pending       stale delivery, ignored
    completed          failed        PaymentConflictError (and vice versa)

The ledger row, the job's payment sub-record and the status transition commit
together under the job store's compare-and-set.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from . import job_states, models
from .config import settings
from .errors import (
    InvalidInputError,
    InvalidTransitionError,
    JobNotFoundError,
    PaymentConflictError,
    PaymentMismatchError,
)
from .job_store import JobStore
from .payment_gateway import FlutterwaveGateway
from .schemas import PaymentEvent

logger = logging.getLogger("hubroute.payments")

# gateway status → ledger status
LEDGER_STATUS = {
    "successful": "completed",
    "failed": "failed",
    "pending": "pending",
}
TERMINAL_LEDGER_STATUSES = {"completed", "failed"}

_millis_lock = threading.Lock()
_last_millis = 0


def _next_millis() -> int:
    """Wall-clock millis, bumped so two attempts in one millisecond still differ."""
    global _last_millis
    with _millis_lock:
        _last_millis = max(int(time.time() * 1000), _last_millis + 1)
        return _last_millis


class PaymentReconciler:

    def __init__(self, db: Session, gateway=None, store: Optional[JobStore] = None):
        self.db = db
        self.gateway = gateway or FlutterwaveGateway()
        self.store = store or JobStore(db)

    # --- References ---

    @staticmethod
    def make_reference(job_id: str) -> str:
        """{prefix}_{job_id}__{millis} — unique per payment attempt."""
        return f"{settings.TX_REF_PREFIX}_{job_id}__{_next_millis()}"

    @staticmethod
    def parse_job_id(reference: str) -> Optional[str]:
        prefix = f"{settings.TX_REF_PREFIX}_"
        if not reference or not reference.startswith(prefix):
            return None
        job_id, sep, _ = reference[len(prefix):].rpartition("__")
        return job_id if sep and job_id else None

    # --- Outbound ---

    def start_payment(self, customer_id: str, job_id: str, email: str, name: str,
                      phone: Optional[str] = None) -> dict:
        """
        Mint a reference, record it as pending, and get a checkout link.
        The ledger row is written before the gateway is called.
        """
        job = self.store.get_for_customer(customer_id, job_id)
        if job.quote is None:
            raise InvalidInputError("Job has no quote to pay for", {"job_id": job_id})
        amount = job.quote.total_price
        currency = job.quote.currency
        reference = self.make_reference(job_id)

        def operation():
            current = self.store.load(job_id)
            if current.status != job_states.SUBMITTED or current.payment_status == "completed":
                raise InvalidTransitionError(
                    f"Job is '{current.status}' — payment can only start while submitted",
                    {"job_id": job_id, "status": current.status},
                )
            self.db.add(models.PaymentRecord(
                tx_ref=reference,
                job_id=job_id,
                amount=amount,
                currency=currency,
                status="pending",
                customer_email=email,
                customer_name=name,
            ))
            current.payment_status = "pending"
            current.payment_reference = reference
            current.payment_amount = amount
            current.payment_currency = currency
            job_states.touch(current)
            return current

        self.store.run(operation, f"start payment for {job_id}")
        logger.info("Payment %s started for job %s (%.2f %s)", reference, job_id, amount, currency)

        link = self.gateway.initialize_transaction(
            amount, currency, reference,
            {"email": email, "name": name, "phone": phone},
            meta={"jobId": job_id, "customerId": customer_id},
        )
        return {"link": link, "tx_ref": reference, "amount": amount, "currency": currency}

    # --- Inbound ---

    def reconcile(self, transaction_id: Optional[str] = None,
                  reference: Optional[str] = None) -> models.Job:
        """Verify with the gateway (source of truth) and apply the result."""
        if not transaction_id and not reference:
            raise InvalidInputError("Missing transaction_id or tx_ref")
        event = self.gateway.verify_transaction(transaction_id=transaction_id, reference=reference)
        if reference and event.reference != reference:
            raise InvalidInputError(
                "Gateway returned a different reference for this transaction",
                {"requested": reference, "gateway": event.reference},
            )
        return self.apply_payment_event(event)

    def apply_payment_event(self, event: PaymentEvent) -> models.Job:
        job, changed = self.store.run(
            lambda: self._apply(event), f"payment event {event.reference}"
        )
        if changed:
            logger.info("Payment %s applied (%s) — job %s is %s / payment %s",
                        event.reference, event.status, job.id, job.status, job.payment_status)
        else:
            logger.info("Payment %s (%s) already applied — no change", event.reference, event.status)
        return job

    def find_record(self, reference: Optional[str] = None,
                    transaction_id: Optional[str] = None) -> Optional[models.PaymentRecord]:
        """Reference first, then the gateway's transaction id — both land on one ledger row."""
        query = self.db.query(models.PaymentRecord)
        if reference:
            record = query.filter(models.PaymentRecord.tx_ref == reference).first()
            if record:
                return record
        if transaction_id:
            return query.filter(models.PaymentRecord.transaction_id == str(transaction_id)).first()
        return None

    def _apply(self, event: PaymentEvent):
        record = self.find_record(event.reference, event.transaction_id)
        job_id = record.job_id if record else self.parse_job_id(event.reference)
        if job_id is None:
            raise InvalidInputError("Unknown payment reference", {"reference": event.reference})
        job = self.db.get(models.Job, job_id)
        if job is None:
            raise JobNotFoundError("Job not found for payment", {"reference": event.reference})

        incoming = LEDGER_STATUS[event.status]

        if record is not None and record.status in TERMINAL_LEDGER_STATUSES:
            if record.status == incoming:
                return job, False
            if incoming == "pending":
                logger.warning("Late pending delivery for %s ignored — already %s",
                               event.reference, record.status)
                return job, False
            logger.error("PAYMENT CONFLICT on %s: committed %s, gateway now reports %s (job %s)",
                         event.reference, record.status, event.status, job.id)
            raise PaymentConflictError(
                "Payment reference already settled with a different status",
                {"reference": event.reference, "committed": record.status, "reported": event.status},
            )
        if record is not None and incoming == "pending":
            return job, False

        if record is None:
            record = models.PaymentRecord(
                tx_ref=event.reference,
                job_id=job.id,
                amount=event.amount,
                currency=event.currency,
                status="pending",
            )
            self.db.add(record)

        now = datetime.utcnow()
        if incoming == "completed":
            self._check_amount(job, event)
            if job.status != job_states.SUBMITTED:
                logger.error("Payment %s succeeded but job %s is '%s' — needs manual refund review",
                             event.reference, job.id, job.status)
                raise InvalidTransitionError(
                    f"Job is '{job.status}' — cannot accept payment",
                    {"job_id": job.id, "reference": event.reference},
                )
            self._settle(record, job, event, "completed", now)
            job_states.apply_transition(job, job_states.PAID, f"Payment confirmed ({event.reference})", now)
        elif incoming == "failed":
            self._settle(record, job, event, "failed", now)
            job_states.touch(job, now)
        else:
            if job.payment_status != "completed":
                job.payment_status = "pending"
                job.payment_reference = event.reference
            job_states.touch(job, now)
        return job, True

    def _settle(self, record, job, event: PaymentEvent, status: str, now: datetime):
        record.status = status
        record.transaction_id = event.transaction_id
        record.verified_at = now
        if job.payment_status == "completed":
            # a failed retry must not hide an earlier successful payment
            return
        job.payment_status = status
        job.payment_reference = event.reference
        job.payment_transaction_id = event.transaction_id
        job.payment_amount = event.amount
        job.payment_currency = event.currency
        job.payment_verified_at = now

    def _check_amount(self, job, event: PaymentEvent):
        expected = job.quote.total_price if job.quote else job.payment_amount
        currency = job.quote.currency if job.quote else job.payment_currency
        if (
            expected is None
            or abs(event.amount - expected) > settings.PAYMENT_AMOUNT_TOLERANCE
            or (currency and event.currency.upper() != currency.upper())
        ):
            logger.error("PAYMENT MISMATCH on %s for job %s: expected %s %s, gateway reports %.2f %s",
                         event.reference, job.id, expected, currency, event.amount, event.currency)
            raise PaymentMismatchError(
                "Payment amount does not match the quote",
                {"reference": event.reference, "expected": expected, "expected_currency": currency,
                 "received": event.amount, "received_currency": event.currency},
            )

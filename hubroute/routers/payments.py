import logging

from fastapi import APIRouter, Depends, Body, Header, HTTPException
from sqlalchemy.orm import Session
from typing import Optional

from ..auth import get_current_customer
from ..database import get_db
from ..errors import InvalidInputError, JobNotFoundError
from ..job_store import job_to_dict
from ..payment_gateway import FlutterwaveGateway
from ..payment_reconciler import PaymentReconciler
from ..schemas import PaymentCreateRequest, PaymentVerifyRequest

logger = logging.getLogger("hubroute.payments.api")

router = APIRouter(prefix="/payments", tags=["payments"])


def get_gateway() -> FlutterwaveGateway:
    return FlutterwaveGateway()


@router.post("/create")
def create_payment(
    request: PaymentCreateRequest,
    db: Session = Depends(get_db),
    gateway: FlutterwaveGateway = Depends(get_gateway),
    customer_id: str = Depends(get_current_customer),
):
    """Start a hosted-checkout payment for a submitted job."""
    return PaymentReconciler(db, gateway).start_payment(
        customer_id, request.job_id, request.email, request.name, request.phone
    )


@router.post("/verify")
def verify_payment(
    request: PaymentVerifyRequest,
    db: Session = Depends(get_db),
    gateway: FlutterwaveGateway = Depends(get_gateway),
    customer_id: str = Depends(get_current_customer),
):
    """Called after the checkout redirect. The gateway, not the client, decides the outcome."""
    job = PaymentReconciler(db, gateway).reconcile(
        transaction_id=request.transaction_id, reference=request.tx_ref
    )
    if job.customer_id != customer_id:
        raise JobNotFoundError("Job not found", {"job_id": job.id})
    return job_to_dict(job)


@router.post("/webhook")
def payment_webhook(
    body: dict = Body(...),
    verif_hash: Optional[str] = Header(default=None, alias="verif-hash"),
    db: Session = Depends(get_db),
    gateway: FlutterwaveGateway = Depends(get_gateway),
):
    if not gateway.verify_webhook_signature(verif_hash):
        logger.warning("Rejected payment webhook with a missing or wrong verif-hash")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    data = body.get("data") or {}
    transaction_id = data.get("id")
    reference = data.get("tx_ref") or data.get("txRef")
    if not transaction_id and not reference:
        raise InvalidInputError("Webhook carries no transaction id or tx_ref")

    job = PaymentReconciler(db, gateway).reconcile(
        transaction_id=str(transaction_id) if transaction_id else None,
        reference=reference,
    )
    return {"status": "ok", "jobId": job.id, "paymentStatus": job.payment_status}

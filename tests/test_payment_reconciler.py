"""
Payment reconciler tests — idempotent application of gateway events.

Tests:
1-3.   References and payment initialization
4-9.   Applying events (success, duplicate, mismatch, failure, pending, conflict)
10-13. Lookup, unknown references, cancelled jobs, gateway verification
14.    Concurrent duplicate deliveries
"""

import threading

import pytest

from hubroute import models
from hubroute.errors import (
    InvalidInputError,
    InvalidTransitionError,
    JobNotFoundError,
    PaymentConflictError,
    PaymentMismatchError,
)
from hubroute.orchestrator import RoutingOrchestrator
from hubroute.payment_reconciler import PaymentReconciler
from hubroute.schemas import PartRequest

from conftest import CUSTOMER_ID, OTHER_CUSTOMER_ID, TestingSessionLocal, make_event


@pytest.fixture
def job(seeded):
    """10 × Precision Bracket in Aluminum 6061-T6 at MechPrecision Toronto — 349.60 NGN."""
    request = PartRequest(part_id="part-001", quantity=10, material="Aluminum 6061-T6")
    return RoutingOrchestrator(seeded).submit_job(CUSTOMER_ID, request, "hub-002")


@pytest.fixture
def reconciler(seeded, gateway):
    return PaymentReconciler(seeded, gateway)


@pytest.fixture
def reference(job, reconciler):
    started = reconciler.start_payment(CUSTOMER_ID, job.id, "alice@example.com", "Alice")
    return started["tx_ref"]


def _timeline(job):
    return [e.status for e in job.timeline]


# ============================================================
# 1-3. References and payment initialization
# ============================================================

def test_reference_round_trips_job_id():
    ref = PaymentReconciler.make_reference("job_abc_123")
    assert ref.startswith("hubroute_job_abc_123__")
    assert PaymentReconciler.parse_job_id(ref) == "job_abc_123"
    assert PaymentReconciler.parse_job_id("other_job_1__123") is None
    assert PaymentReconciler.parse_job_id("hubroute_no-separator") is None


def test_start_payment_records_pending_ledger_row(job, reconciler, gateway, seeded):
    started = reconciler.start_payment(CUSTOMER_ID, job.id, "alice@example.com", "Alice", "+2348000000000")

    assert started["link"] == "https://checkout.example/pay/abc123"
    assert started["amount"] == 349.60
    assert started["currency"] == "NGN"

    record = seeded.query(models.PaymentRecord).filter_by(tx_ref=started["tx_ref"]).one()
    assert record.status == "pending"
    assert record.amount == 349.60
    assert job.payment_status == "pending"
    assert job.status == "submitted"

    args = gateway.initialize_transaction.call_args
    assert args.args[:3] == (349.60, "NGN", started["tx_ref"])
    assert args.kwargs["meta"]["jobId"] == job.id


def test_start_payment_refused_for_foreign_or_paid_job(job, reconciler, reference):
    with pytest.raises(JobNotFoundError):
        reconciler.start_payment(OTHER_CUSTOMER_ID, job.id, "bob@example.com", "Bob")

    reconciler.apply_payment_event(make_event(reference))
    with pytest.raises(InvalidTransitionError):
        reconciler.start_payment(CUSTOMER_ID, job.id, "alice@example.com", "Alice")


# ============================================================
# 4-9. Applying events
# ============================================================

def test_successful_payment_marks_job_paid(job, reconciler, reference, seeded):
    result = reconciler.apply_payment_event(make_event(reference, transaction_id="9001"))

    assert result.status == "paid"
    assert result.payment_status == "completed"
    assert result.payment_transaction_id == "9001"
    assert result.payment_amount == 349.60
    assert result.payment_verified_at is not None
    assert _timeline(result) == ["submitted", "paid"]

    record = seeded.query(models.PaymentRecord).filter_by(tx_ref=reference).one()
    assert record.status == "completed"
    assert record.transaction_id == "9001"


def test_duplicate_delivery_applies_once(job, reconciler, reference):
    first = reconciler.apply_payment_event(make_event(reference))
    version = first.version
    second = reconciler.apply_payment_event(make_event(reference))

    assert second.id == first.id
    assert second.version == version
    assert _timeline(second).count("paid") == 1


def test_amount_mismatch_leaves_job_untouched(job, reconciler, reference, seeded):
    with pytest.raises(PaymentMismatchError) as exc:
        reconciler.apply_payment_event(make_event(reference, amount=100.00))
    assert exc.value.details["expected"] == 349.60

    seeded.expire_all()
    assert job.status == "submitted"
    assert job.payment_status == "pending"
    assert _timeline(job) == ["submitted"]
    record = seeded.query(models.PaymentRecord).filter_by(tx_ref=reference).one()
    assert record.status == "pending"


def test_currency_mismatch_rejected(job, reconciler, reference):
    with pytest.raises(PaymentMismatchError):
        reconciler.apply_payment_event(make_event(reference, currency="USD"))


def test_amount_within_tolerance_accepted(job, reconciler, reference):
    result = reconciler.apply_payment_event(make_event(reference, amount=349.605))
    assert result.status == "paid"


def test_failed_payment_keeps_job_submitted_and_allows_retry(job, reconciler, reference):
    result = reconciler.apply_payment_event(make_event(reference, status="failed"))
    assert result.status == "submitted"
    assert result.payment_status == "failed"
    assert _timeline(result) == ["submitted"]

    retry = reconciler.start_payment(CUSTOMER_ID, job.id, "alice@example.com", "Alice")["tx_ref"]
    assert retry != reference
    paid = reconciler.apply_payment_event(make_event(retry, transaction_id="9002"))
    assert paid.status == "paid"
    assert paid.payment_reference == retry


def test_pending_event_for_new_reference(job, reconciler, seeded):
    ref = PaymentReconciler.make_reference(job.id)
    result = reconciler.apply_payment_event(make_event(ref, status="pending"))

    assert result.status == "submitted"
    assert result.payment_status == "pending"
    assert result.payment_reference == ref
    record = seeded.query(models.PaymentRecord).filter_by(tx_ref=ref).one()
    assert record.status == "pending"


def test_late_pending_after_success_is_ignored(job, reconciler, reference):
    reconciler.apply_payment_event(make_event(reference))
    result = reconciler.apply_payment_event(make_event(reference, status="pending"))
    assert result.status == "paid"
    assert result.payment_status == "completed"


def test_conflicting_terminal_status_raises(job, reconciler, reference, seeded):
    reconciler.apply_payment_event(make_event(reference))
    with pytest.raises(PaymentConflictError) as exc:
        reconciler.apply_payment_event(make_event(reference, status="failed"))
    assert exc.value.details["committed"] == "completed"

    seeded.expire_all()
    assert job.status == "paid"
    assert job.payment_status == "completed"


# ============================================================
# 10-13. Lookup, unknown references, cancelled jobs, gateway verification
# ============================================================

def test_record_found_by_transaction_id(job, reconciler, reference):
    reconciler.apply_payment_event(make_event(reference, transaction_id="7777"))
    assert reconciler.find_record(transaction_id="7777").tx_ref == reference
    assert reconciler.find_record(reference="nope", transaction_id="7777").tx_ref == reference
    assert reconciler.find_record() is None


def test_unknown_reference_rejected(seeded, reconciler):
    with pytest.raises(InvalidInputError):
        reconciler.apply_payment_event(make_event("someone-else_123"))
    with pytest.raises(JobNotFoundError):
        reconciler.apply_payment_event(make_event(PaymentReconciler.make_reference("job_missing")))


def test_payment_on_cancelled_job_is_refused(job, reconciler, reference, seeded):
    RoutingOrchestrator(seeded).cancel(CUSTOMER_ID, job.id)
    with pytest.raises(InvalidTransitionError):
        reconciler.apply_payment_event(make_event(reference))

    seeded.expire_all()
    assert job.status == "cancelled"
    assert job.payment_status == "pending"


def test_reconcile_trusts_gateway_verification(job, reconciler, reference, gateway):
    gateway.verify_transaction.return_value = make_event(reference, transaction_id="9001")

    result = reconciler.reconcile(transaction_id="9001", reference=reference)
    assert result.status == "paid"
    gateway.verify_transaction.assert_called_once_with(transaction_id="9001", reference=reference)

    with pytest.raises(InvalidInputError):
        reconciler.reconcile(transaction_id="9001", reference="hubroute_job_other__1")
    with pytest.raises(InvalidInputError):
        reconciler.reconcile()


# ============================================================
# 14. Concurrent duplicate deliveries
# ============================================================

def test_concurrent_duplicates_produce_one_paid_transition(job, reference, gateway, seeded):
    """Three sessions apply the same successful event at once — exactly one wins."""
    event = make_event(reference)
    results, errors = [], []
    barrier = threading.Barrier(3)

    def deliver():
        session = TestingSessionLocal()
        try:
            barrier.wait()
            applied = PaymentReconciler(session, gateway).apply_payment_event(event)
            results.append(applied.status)
        except Exception as e:  # collected and asserted below
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=deliver) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert results == ["paid", "paid", "paid"]

    seeded.expire_all()
    assert _timeline(job).count("paid") == 1
    assert seeded.query(models.PaymentRecord).filter_by(tx_ref=reference).count() == 1

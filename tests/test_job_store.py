"""
Job store tests — compare-and-set retries, read failures, serialization.
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from hubroute import models
from hubroute.errors import ConflictError, DataUnavailableError, InvalidInputError, NotFoundError
from hubroute.job_store import JobStore, job_to_dict
from hubroute.orchestrator import RoutingOrchestrator
from hubroute.schemas import PartRequest

from conftest import CUSTOMER_ID


def _flaky(error, failures):
    """An operation that raises `error` for the first `failures` calls."""
    calls = {"n": 0}

    def operation():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise error
        return "done"

    return operation, calls


def test_lost_race_is_retried(db):
    operation, calls = _flaky(StaleDataError("version mismatch"), failures=2)
    assert JobStore(db, attempts=3, backoff=0).run(operation) == "done"
    assert calls["n"] == 3


def test_lost_race_every_time_is_a_conflict(db):
    operation, calls = _flaky(StaleDataError("version mismatch"), failures=5)
    with pytest.raises(ConflictError) as exc:
        JobStore(db, attempts=3, backoff=0).run(operation, "pay job")
    assert calls["n"] == 3
    assert exc.value.details == {"attempts": 3}


def test_transient_errors_become_unavailable(db):
    error = OperationalError("UPDATE jobs", {}, Exception("database is locked"))
    operation, calls = _flaky(error, failures=10)
    with pytest.raises(DataUnavailableError):
        JobStore(db, attempts=2, backoff=0).run(operation)
    assert calls["n"] == 2


def test_transient_error_recovers_after_backoff(db):
    error = OperationalError("UPDATE jobs", {}, Exception("database is locked"))
    operation, calls = _flaky(error, failures=1)
    assert JobStore(db, attempts=3, backoff=0.001).run(operation) == "done"
    assert calls["n"] == 2


def test_business_errors_are_not_retried(db):
    operation, calls = _flaky(InvalidInputError("nope"), failures=10)
    with pytest.raises(InvalidInputError):
        JobStore(db, attempts=3, backoff=0).run(operation)
    assert calls["n"] == 1


def test_missing_records(db):
    store = JobStore(db)
    with pytest.raises(NotFoundError):
        store.get("job_missing")
    with pytest.raises(NotFoundError):
        store.get_part("part-missing")
    with pytest.raises(NotFoundError):
        store.get_quote("quote-missing")


def test_hub_load_is_clamped(seeded):
    store = JobStore(seeded)
    hub = store.adjust_hub_load("hub-003", 0.5)
    assert hub.current_load == 1.0
    hub = store.adjust_hub_load("hub-003", -3.0)
    assert hub.current_load == 0.0
    assert store.adjust_hub_load("hub-missing", 0.1) is None
    seeded.rollback()


def test_job_serialization(seeded):
    request = PartRequest(part_id="part-001", quantity=10)
    job = RoutingOrchestrator(seeded).submit_job(CUSTOMER_ID, request, "hub-002")
    data = job_to_dict(job)

    assert data["customerId"] == CUSTOMER_ID
    assert data["quote"]["partName"] == "Precision Bracket"
    assert data["quote"]["validUntil"]
    assert data["payment"] == {
        "status": "unpaid", "reference": None, "transactionId": None,
        "amount": None, "currency": None, "verifiedAt": None,
    }
    assert data["tracking"]["timeline"][0]["note"] == "Submitted for manufacturing"
    assert data["version"] == seeded.get(models.Job, job.id).version

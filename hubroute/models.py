from sqlalchemy import Column, Integer, String, Float, DateTime, Text, ForeignKey, Boolean, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from .database import Base


# --- Status vocabularies (stored as VARCHAR so new values need no migration) ---

JOB_STATUSES = ["draft", "submitted", "paid", "manufacturing", "completed", "cancelled"]

# Payment sub-record on a job: unpaid until a payment is initialized
JOB_PAYMENT_STATUSES = ["unpaid", "pending", "completed", "failed"]

# Ledger status per gateway reference — completed/failed are terminal
PAYMENT_RECORD_STATUSES = ["pending", "completed", "failed"]


# --- Reference data ---

class CatalogPart(Base):
    """Part template — the priced unit of the catalog."""
    __tablename__ = "catalog_parts"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False, default="general")
    process = Column(String, nullable=True)  # e.g. "CNC Milling"
    material = Column(String, nullable=True)  # default material
    base_price = Column(Float, nullable=False, default=0.0)
    lead_time_days = Column(Integer, default=5)
    manufacturability = Column(Integer, default=95)
    materials = Column(JSON, default=list)  # [{"name": str, "priceMultiplier": float}]
    parameters = Column(JSON, default=list)  # parameter definitions (dimensions etc.)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Hub(Base):
    """Production hub. current_load is bumped on routing, guarded by version."""
    __tablename__ = "hubs"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    capabilities = Column(JSON, default=list)  # processes, e.g. ["CNC Milling", "3D Printing"]
    materials = Column(JSON, default=list)
    rating = Column(Float, default=4.5)
    current_load = Column(Float, default=0.5)
    base_price = Column(Float, default=30.0)
    avg_lead_time = Column(Integer, default=5)
    certified = Column(Boolean, default=True)
    completed_jobs = Column(Integer, default=0)
    location = Column(JSON, default=dict)  # {"city", "country", "lat", "lng"}
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}


# --- Pipeline records ---

class Quote(Base):
    """Persisted Quote — snapshot of the inputs and the computed breakdown."""
    __tablename__ = "quotes"

    id = Column(String, primary_key=True)  # UUID
    customer_id = Column(String, nullable=True, index=True)
    part_id = Column(String, ForeignKey("catalog_parts.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    material = Column(String, nullable=False)
    material_fallback = Column(Boolean, default=False)
    parameters = Column(JSON, default=dict)
    manufacturability = Column(Integer, nullable=True)
    base_price = Column(Float, nullable=False)
    material_multiplier = Column(Float, default=1.0)
    volume_discount = Column(Float, default=1.0)
    unit_price = Column(Float, nullable=False)
    subtotal = Column(Float, nullable=False)
    platform_fee = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    currency = Column(String, nullable=False)
    lead_time_days = Column(Integer, nullable=False)
    valid_until = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    part = relationship("CatalogPart")


class Job(Base):
    """
    The unit of work from submission to completion.

    Never deleted — terminal statuses are completed/cancelled. Every UPDATE is
    compare-and-set on `version` (SQLAlchemy raises StaleDataError on a lost race).
    """
    __tablename__ = "jobs"

    id = Column(String, primary_key=True)
    customer_id = Column(String, nullable=False, index=True)
    quote_id = Column(String, ForeignKey("quotes.id"), nullable=True)
    hub_id = Column(String, ForeignKey("hubs.id"), nullable=True)
    status = Column(String, nullable=False, default="submitted", index=True)

    # Payment sub-record
    payment_status = Column(String, nullable=False, default="unpaid")
    payment_reference = Column(String, nullable=True)
    payment_transaction_id = Column(String, nullable=True)
    payment_amount = Column(Float, nullable=True)
    payment_currency = Column(String, nullable=True)
    payment_verified_at = Column(DateTime, nullable=True)

    # Tracking
    estimated_completion = Column(DateTime, nullable=True)
    tracking_number = Column(String, nullable=True)
    design_location = Column(String, nullable=True)  # StorageLocation.uri

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    quote = relationship("Quote")
    hub = relationship("Hub")
    timeline = relationship(
        "JobTimelineEntry",
        back_populates="job",
        order_by="[JobTimelineEntry.timestamp, JobTimelineEntry.id]",
        cascade="all, delete-orphan",
    )
    payments = relationship("PaymentRecord", back_populates="job")


class JobTimelineEntry(Base):
    """Append-only — rows are inserted, never updated or removed."""
    __tablename__ = "job_timeline"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(String, ForeignKey("jobs.id"), nullable=False, index=True)
    status = Column(String, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)
    note = Column(Text, nullable=True)

    job = relationship("Job", back_populates="timeline")


class PaymentRecord(Base):
    """Idempotency ledger — one row per gateway transaction reference."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    tx_ref = Column(String, unique=True, nullable=False)
    job_id = Column(String, ForeignKey("jobs.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False, default=0.0)
    currency = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    transaction_id = Column(String, nullable=True, index=True)  # gateway's internal id
    customer_email = Column(String, nullable=True)
    customer_name = Column(String, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    job = relationship("Job", back_populates="payments")

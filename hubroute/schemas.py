from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal
from datetime import datetime

from .storage import StorageLocation


class CamelModel(BaseModel):
    """Wire format is camelCase; snake_case is accepted on input too."""
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# --- Catalog ---

class MaterialOption(CamelModel):
    name: str
    price_multiplier: float = 1.0


class PartTemplate(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    category: str = "general"
    process: Optional[str] = None
    material: Optional[str] = None  # default material
    base_price: float
    lead_time_days: int = 5
    manufacturability: Optional[int] = None
    materials: List[MaterialOption] = []


# --- Quoting ---

class PartRequest(CamelModel):
    """Immutable quote request — validated by the pricing engine, not here."""
    part_id: str
    quantity: int = 1
    material: Optional[str] = None
    parameters: dict = {}
    manufacturability_score: Optional[float] = None
    design_location: Optional[StorageLocation] = None

    class Config:
        frozen = True


class QuoteRequest(CamelModel):
    quantity: int = 1
    material: Optional[str] = None
    parameters: dict = {}
    manufacturability_score: Optional[float] = None


class Quote(CamelModel):
    id: Optional[str] = None  # set once persisted
    part_id: str
    material: str
    material_fallback: bool = False
    quantity: int
    parameters: dict = {}
    manufacturability: Optional[int] = None
    base_price: float
    material_multiplier: float
    volume_discount: float
    unit_price: float
    subtotal: float
    platform_fee: float
    total_price: float
    currency: str
    lead_time_days: int
    valid_until: datetime


# --- Hubs ---

class GeoPoint(CamelModel):
    lat: float
    lng: float


class HubProfile(CamelModel):
    id: str
    name: str
    capabilities: List[str] = []
    materials: List[str] = []
    rating: float = 4.5
    current_load: float = 0.5
    base_price: float = 30.0
    avg_lead_time: int = 5
    certified: bool = True
    completed_jobs: int = 0
    location: dict = {}


class HubRequirements(CamelModel):
    process: Optional[str] = None
    material: Optional[str] = None
    quantity: int = 1
    lead_time_days: Optional[int] = None  # informational — sets fits_lead_time only
    location: Optional[GeoPoint] = None


class HubMatch(CamelModel):
    hub_id: str
    hub_name: str
    hub_location: str = "Unknown"
    rating: float
    certified: bool
    process_match: bool
    material_match: bool
    compatibility: float
    load_score: float
    distance_score: float
    score: float
    price_estimate: float
    lead_time_days: int
    fits_lead_time: bool = True

    @property
    def fully_compatible(self) -> bool:
        return self.process_match and self.material_match


# --- Jobs ---

class SubmitJobRequest(CamelModel):
    part_request: PartRequest
    hub_id: str
    quote_id: Optional[str] = None


class JobUpdate(CamelModel):
    """Whitelisted mutation surface — anything else is rejected."""
    status: Optional[str] = None
    note: Optional[str] = None
    estimated_completion: Optional[datetime] = None
    tracking_number: Optional[str] = None

    class Config:
        extra = "forbid"


class MilestoneRequest(CamelModel):
    milestone: Literal["confirmed", "in_progress"]
    note: Optional[str] = None


# --- Payments ---

class PaymentEvent(CamelModel):
    """Gateway-verified notification — may be delivered more than once."""
    reference: str
    transaction_id: Optional[str] = None
    status: Literal["successful", "failed", "pending"]
    amount: float
    currency: str
    gateway_timestamp: Optional[datetime] = None


class PaymentCreateRequest(CamelModel):
    job_id: str
    email: str
    name: str
    phone: Optional[str] = None


class PaymentVerifyRequest(CamelModel):
    transaction_id: Optional[str] = None
    tx_ref: Optional[str] = Field(default=None, alias="tx_ref")

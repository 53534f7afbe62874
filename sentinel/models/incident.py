from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
import random
import uuid

from .enums import (
    ActionType,
    ImpactCategory,
    IncidentStatus,
    LocationAccuracy,
    Priority,
    Speaker,
    WeaponsPresent,
)

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def new_call_id() -> str:
    """External correlation id for incidents the console originates itself."""
    return f"CALL-{int(utcnow().timestamp() * 1000)}-{random.randint(0, 999)}"

class Incident(BaseModel):
    # Every attribute write goes through validation so a bad value can
    # never land on the record, whichever path writes it.
    model_config = ConfigDict(validate_assignment=True)

    # Core
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    call_id: str = Field(default_factory=new_call_id)
    source_type: str = "web_voice"

    # Lifecycle
    status: IncidentStatus = IncidentStatus.AI_HANDLING
    priority: Priority = Priority.MEDIUM
    impact_category: ImpactCategory = ImpactCategory.NONE

    # Caller
    caller_name: Optional[str] = None
    caller_phone: Optional[str] = None

    # Emergency details
    incident_type: Optional[str] = None
    location_text: Optional[str] = None
    location_lat: Optional[float] = None
    location_lon: Optional[float] = None
    location_accuracy: LocationAccuracy = LocationAccuracy.APPROXIMATE
    number_of_victims: int = Field(default=0, ge=0)
    weapons_present: WeaponsPresent = WeaponsPresent.UNKNOWN
    medical_emergency: bool = False
    notes: Optional[str] = None
    ai_confidence_avg: float = Field(default=0.0, ge=0.0, le=1.0)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    closed_at: Optional[datetime] = None

    @property
    def is_closed(self) -> bool:
        return self.status == IncidentStatus.CLOSED or self.closed_at is not None

    def touch(self):
        self.updated_at = utcnow()

    def close(self):
        """Move the incident to its terminal state."""
        now = utcnow()
        self.status = IncidentStatus.CLOSED
        self.closed_at = now
        self.updated_at = now

class TranscriptUtterance(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    incident_id: str
    speaker: Speaker
    text: str
    timestamp_iso: str = Field(default_factory=lambda: utcnow().isoformat())
    tags: List[str] = Field(default_factory=list)

class ExtractedFieldRecord(BaseModel):
    """Latest known value of one extracted field on one incident."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    incident_id: str
    field_name: str
    field_value: Optional[str] = None
    confidence: Optional[float] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    previous_value: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)

class IncidentAction(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    incident_id: str
    responder_id: str
    action_type: ActionType
    action_data: Dict[str, Any] = Field(default_factory=dict)
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

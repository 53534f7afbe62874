from enum import Enum

class IncidentStatus(str, Enum):
    AI_HANDLING = "ai_handling"
    HUMAN_ACTIVE = "human_active"
    CLOSED = "closed"

class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class ImpactCategory(str, Enum):
    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

class WeaponsPresent(str, Enum):
    YES = "yes"
    NO = "no"
    UNKNOWN = "unknown"

class Speaker(str, Enum):
    CALLER = "caller"
    AI = "ai"
    RESPONDER = "responder"

class LocationAccuracy(str, Enum):
    EXACT = "exact"
    APPROXIMATE = "approximate"
    GPS_ONLY = "gps_only"

class ActionType(str, Enum):
    DISPATCH = "dispatch"
    NOTE = "note"
    FIELD_EDIT = "field_edit"
    TRANSFER = "transfer"
    MARK_SAFE = "mark_safe"
    ESCALATE = "escalate"
    REDACT = "redact"
    ATTACHMENT = "attachment"

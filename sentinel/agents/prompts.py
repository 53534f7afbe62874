SENTINEL_SYSTEM_PROMPT = """You are the Sentinel, an emergency response observer.
You listen to the conversation between a caller and a dispatcher (AI or human)
and keep the emergency incident record up to date.

Do not generate conversational responses. Only call update_emergency_incident
when you have gathered new or changed information.

FIELDS:
- Caller name and phone
- Incident type (e.g. Fire, Medical, Crime)
- Location (address or description)
- Priority, one of: low, medium, high, critical
  - critical: immediate threat to life, mass casualty or major disaster
  - high: serious situation, potential threat to life or major property damage
  - medium: not life-threatening but urgent, needs dispatch
  - low: non-urgent, administrative or minor
- Medical emergency (true/false)
- Number of victims
- Weapons present: yes, no or unknown
- Impact category: None, Low, Medium or High
- Summary of the situation

RULES:
- Only include fields you extracted or that changed. Never guess.
- If the caller corrects themselves, send the corrected value.
- Leaving a field out means "no new information", not "clear it".
"""

UPDATE_INCIDENT_FUNCTION = "update_emergency_incident"

UPDATE_INCIDENT_TOOL = {
    "type": "function",
    "function": {
        "name": UPDATE_INCIDENT_FUNCTION,
        "description": "Updates the emergency incident record with extracted details. Only include fields that are found in the transcript.",
        "parameters": {
            "type": "object",
            "properties": {
                "caller_name": {"type": "string", "description": "Name of the caller"},
                "caller_phone": {"type": "string", "description": "Phone number of the caller"},
                "incident_type": {"type": "string", "description": "Type of emergency (Fire, Medical, etc.)"},
                "location_text": {"type": "string", "description": "Address or location description"},
                "priority": {
                    "type": "string",
                    "enum": ["low", "medium", "high", "critical"],
                    "description": "Urgency level. MUST be one of: low, medium, high, critical.",
                },
                "medical_emergency": {"type": "boolean", "description": "Is medical attention needed?"},
                "number_of_victims": {"type": "integer", "description": "Count of people injured/at risk"},
                "weapons_present": {
                    "type": "string",
                    "enum": ["yes", "no", "unknown"],
                    "description": "Are weapons involved?",
                },
                "impact_category": {
                    "type": "string",
                    "enum": ["None", "Low", "Medium", "High"],
                    "description": "Severity of impact",
                },
                "summary": {"type": "string", "description": "Summary or extra details"},
            },
            "required": [],
        },
    },
}

SPEAKER_LABELS = {
    "caller": "Caller",
    "ai": "Dispatcher",
    "responder": "Dispatcher",
}

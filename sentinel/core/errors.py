class SentinelError(Exception):
    """Base class for dispatch console errors."""


class StoreWriteError(SentinelError):
    """The record store rejected an incident write."""


class IncidentNotFoundError(SentinelError):
    def __init__(self, incident_id: str):
        super().__init__(f"Incident {incident_id} not found")
        self.incident_id = incident_id


class InvalidActionError(SentinelError):
    """An operator action was unknown or carried an unusable payload."""

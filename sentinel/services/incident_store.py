"""
Incident Record Store

A keyed store of incident state with change notification. The console
only depends on the IncidentStore interface; InMemoryIncidentStore backs
the single-process deployment and the test suite.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from sentinel.models.incident import ExtractedFieldRecord, Incident, IncidentAction, utcnow

logger = logging.getLogger(__name__)

# on_change(incident_id, kind, payload)
ChangeCallback = Callable[[str, str, Any], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]

INCIDENT_CHANGED = "incident"
FIELD_CHANGED = "extracted_field"
ACTION_APPENDED = "action"


def field_value_to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class IncidentStore(ABC):

    @abstractmethod
    async def get(self, incident_id: str) -> Optional[Incident]:
        ...

    @abstractmethod
    async def get_by_call_id(self, call_id: str) -> Optional[Incident]:
        ...

    @abstractmethod
    async def list_incidents(self) -> List[Incident]:
        ...

    @abstractmethod
    async def upsert(self, incident: Incident) -> Incident:
        """Write the whole record. Raises StoreWriteError on rejection."""
        ...

    @abstractmethod
    async def upsert_field_record(
        self,
        incident_id: str,
        field_name: str,
        value: Any,
        confidence: Optional[float],
        verified_by: Optional[str] = None,
    ) -> ExtractedFieldRecord:
        ...

    @abstractmethod
    async def list_field_records(self, incident_id: str) -> List[ExtractedFieldRecord]:
        ...

    @abstractmethod
    async def append_action(self, action: IncidentAction) -> IncidentAction:
        ...

    @abstractmethod
    async def list_actions(self, incident_id: str) -> List[IncidentAction]:
        ...

    @abstractmethod
    def subscribe(self, incident_id: Optional[str], on_change: ChangeCallback) -> Unsubscribe:
        """Watch one incident, or every incident when incident_id is None."""
        ...


class InMemoryIncidentStore(IncidentStore):
    """Process-local store. Records go in and come out as copies."""

    def __init__(self):
        self._incidents: Dict[str, Incident] = {}
        self._fields: Dict[str, Dict[str, ExtractedFieldRecord]] = defaultdict(dict)
        self._actions: Dict[str, List[IncidentAction]] = defaultdict(list)
        self._subscribers: Dict[Optional[str], List[ChangeCallback]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def get(self, incident_id: str) -> Optional[Incident]:
        incident = self._incidents.get(incident_id)
        return incident.model_copy(deep=True) if incident else None

    async def get_by_call_id(self, call_id: str) -> Optional[Incident]:
        for incident in self._incidents.values():
            if incident.call_id == call_id:
                return incident.model_copy(deep=True)
        return None

    async def list_incidents(self) -> List[Incident]:
        incidents = sorted(self._incidents.values(), key=lambda i: i.created_at)
        return [i.model_copy(deep=True) for i in incidents]

    async def upsert(self, incident: Incident) -> Incident:
        logger.info(f"Store upsert incidents: {incident.id}")
        stored = incident.model_copy(deep=True)
        async with self._lock:
            self._incidents[incident.id] = stored
        await self._notify(incident.id, INCIDENT_CHANGED, stored.model_copy(deep=True))
        return stored.model_copy(deep=True)

    async def upsert_field_record(
        self,
        incident_id: str,
        field_name: str,
        value: Any,
        confidence: Optional[float],
        verified_by: Optional[str] = None,
    ) -> ExtractedFieldRecord:
        logger.info(f"Store upsert extracted_fields: {incident_id}/{field_name}")
        text = field_value_to_text(value)
        async with self._lock:
            current = self._fields[incident_id].get(field_name)
            now = utcnow()
            if current is None:
                record = ExtractedFieldRecord(
                    incident_id=incident_id,
                    field_name=field_name,
                    field_value=text,
                    confidence=confidence,
                )
            else:
                record = current.model_copy(update={
                    "previous_value": current.field_value,
                    "field_value": text,
                    "confidence": confidence,
                    "verified_by": None,
                    "verified_at": None,
                    "updated_at": now,
                })
            if verified_by:
                record.verified_by = verified_by
                record.verified_at = now
            self._fields[incident_id][field_name] = record
        await self._notify(incident_id, FIELD_CHANGED, record.model_copy())
        return record.model_copy()

    async def list_field_records(self, incident_id: str) -> List[ExtractedFieldRecord]:
        return [r.model_copy() for r in self._fields.get(incident_id, {}).values()]

    async def append_action(self, action: IncidentAction) -> IncidentAction:
        logger.info(f"Store insert actions: {action.incident_id} {action.action_type.value}")
        stored = action.model_copy(deep=True)
        async with self._lock:
            self._actions[action.incident_id].append(stored)
        await self._notify(action.incident_id, ACTION_APPENDED, stored.model_copy(deep=True))
        return stored.model_copy(deep=True)

    async def list_actions(self, incident_id: str) -> List[IncidentAction]:
        return [a.model_copy(deep=True) for a in self._actions.get(incident_id, [])]

    def subscribe(self, incident_id: Optional[str], on_change: ChangeCallback) -> Unsubscribe:
        self._subscribers[incident_id].append(on_change)

        def unsubscribe():
            callbacks = self._subscribers.get(incident_id, [])
            if on_change in callbacks:
                callbacks.remove(on_change)

        return unsubscribe

    async def _notify(self, incident_id: str, kind: str, payload: Any):
        callbacks = list(self._subscribers.get(incident_id, [])) + list(self._subscribers.get(None, []))
        for callback in callbacks:
            try:
                result = callback(incident_id, kind, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Store subscriber failed for {incident_id} ({kind})")

import logging
from typing import Any, Dict, List, Optional, Tuple

from sentinel.agents.extraction_agent import ExtractionAgent
from sentinel.config import Settings
from sentinel.core.errors import IncidentNotFoundError, InvalidActionError
from sentinel.core.reconciler import IncidentReconciler
from sentinel.core.transcript_aggregator import TranscriptAggregator
from sentinel.models.enums import ActionType, IncidentStatus, Priority, Speaker
from sentinel.models.incident import Incident, IncidentAction, TranscriptUtterance, utcnow
from sentinel.services.field_normalizer import REJECTED, FieldNormalizer
from sentinel.services.geocoding import AddressResolver, build_address_string
from sentinel.services.incident_store import IncidentStore, InMemoryIncidentStore

logger = logging.getLogger(__name__)

LOCATION_EVENT_TYPES = ("location_update", "location_confirmed", "escalation_request")

# Incident attributes an operator may edit by hand
EDITABLE_FIELDS = (
    "caller_name",
    "caller_phone",
    "incident_type",
    "location_text",
    "priority",
    "medical_emergency",
    "number_of_victims",
    "weapons_present",
    "impact_category",
    "notes",
)


class DispatchOrchestrator:
    def __init__(
        self,
        settings: Settings,
        store: Optional[IncidentStore] = None,
        oracle=None,
        resolver=None,
    ):
        self.settings = settings
        self.store = store or InMemoryIncidentStore()
        self.oracle = oracle or ExtractionAgent(
            api_key=settings.groq_api_key,
            model=settings.groq_model,
            timeout=settings.oracle_timeout_seconds,
        )
        self.resolver = resolver or AddressResolver(
            api_key=settings.google_maps_api_key,
            timeout=settings.geocode_timeout_seconds,
        )
        self.normalizer = FieldNormalizer()
        self.aggregator = TranscriptAggregator()
        self.reconciler = IncidentReconciler(
            store=self.store,
            aggregator=self.aggregator,
            oracle=self.oracle,
            resolver=self.resolver,
            normalizer=self.normalizer,
            debounce_seconds=settings.debounce_seconds,
            throttle_seconds=settings.throttle_seconds,
            oracle_timeout=settings.oracle_timeout_seconds,
            confidence=settings.extraction_confidence,
        )

        self.broadcast_func = None
        self.incident_broadcast_func = None
        self._unsubscribe = None
        self.is_running = False

    def set_broadcast_function(self, broadcast_func, incident_broadcast_func=None):
        """
        broadcast_func(state) receives the dashboard snapshot on every change;
        incident_broadcast_func(incident_id, context) the changed incident.
        """
        self.broadcast_func = broadcast_func
        self.incident_broadcast_func = incident_broadcast_func

    async def start(self):
        await self.aggregator.start()
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(None, self._on_store_change)
        self.is_running = True
        logger.info("🚀 Dispatch orchestrator started")

    async def stop(self):
        self.is_running = False
        # Draining the channel schedules rounds, so cancel timers afterwards
        await self.aggregator.stop()
        self.reconciler.shutdown()
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    # --- DASHBOARD ---
    async def get_state(self) -> Dict[str, Any]:
        incidents = await self.store.list_incidents()
        active = [i.model_dump(mode="json") for i in incidents if not i.is_closed]
        closed = [i.model_dump(mode="json") for i in incidents if i.is_closed]
        return {
            "active_calls": active,
            "closed_calls": closed,
            "stats": {
                "total_active": len(active),
                "ai_handling": sum(1 for i in incidents if i.status == IncidentStatus.AI_HANDLING),
                "human_active": sum(1 for i in incidents if i.status == IncidentStatus.HUMAN_ACTIVE),
                "closed": len(closed),
            },
        }

    async def broadcast_update(self):
        if not self.broadcast_func:
            return
        try:
            await self.broadcast_func(await self.get_state())
        except Exception:
            logger.exception("❌ Broadcast failed")

    async def broadcast_incident(self, incident_id: str):
        if not self.incident_broadcast_func:
            return
        try:
            context = await self.get_incident_context(incident_id)
            await self.incident_broadcast_func(incident_id, context)
        except IncidentNotFoundError:
            return
        except Exception:
            logger.exception(f"❌ Incident broadcast failed for {incident_id}")

    async def _on_store_change(self, incident_id: str, kind: str, payload: Any):
        await self.broadcast_update()
        await self.broadcast_incident(incident_id)

    async def get_incident_context(self, incident_id: str) -> Dict[str, Any]:
        incident = await self._require(incident_id)
        data = incident.model_dump(mode="json")
        data["transcripts"] = [u.model_dump(mode="json") for u in self.aggregator.snapshot(incident_id)]
        data["extracted_fields"] = [r.model_dump(mode="json") for r in await self.store.list_field_records(incident_id)]
        data["actions"] = [a.model_dump(mode="json") for a in await self.store.list_actions(incident_id)]
        return data

    async def _require(self, incident_id: str) -> Incident:
        incident = await self.store.get(incident_id)
        if incident is None:
            raise IncidentNotFoundError(incident_id)
        return incident

    # --- CALL HANDLING ---
    async def start_call(
        self,
        call_id: str,
        incident_type: Optional[str] = None,
        location_text: Optional[str] = None,
    ) -> Tuple[Incident, bool]:
        """Create the incident for a new voice session. Repeats are no-ops."""
        existing = await self.store.get_by_call_id(call_id)
        if existing:
            logger.info(f"📞 Duplicate call-start for {call_id}")
            return existing, False

        now = utcnow()
        incident = Incident(
            call_id=call_id,
            status=IncidentStatus.AI_HANDLING,
            incident_type=incident_type or "Incoming Call...",
            location_text=location_text or "Identifying...",
            source_type="web_voice",
            started_at=now,
            created_at=now,
            updated_at=now,
        )
        incident = await self.store.upsert(incident)
        self.reconciler.start_session(incident.id)
        logger.info(f"📞 New call {call_id} -> incident {incident.id}")
        return incident, True

    async def on_utterance(
        self,
        incident_id: str,
        speaker: str,
        text: str,
        timestamp_iso: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> TranscriptUtterance:
        utterance = TranscriptUtterance(
            incident_id=incident_id,
            speaker=Speaker(speaker),
            text=text,
            tags=tags or [],
        )
        if timestamp_iso:
            utterance.timestamp_iso = timestamp_iso
        await self.aggregator.publish(utterance)
        return utterance

    def end_session(self, incident_id: str):
        logger.info(f"📴 Voice session ended for {incident_id}")
        self.reconciler.end_session(incident_id)

    # --- LOCATION WEBHOOK ---
    async def handle_location_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        One-shot enrichment from an external location event.

        Bypasses the reconciler: resolve the address and write it through.
        Free text wins over structured components.
        """
        event_type = event.get("event_type")
        if event_type and event_type not in LOCATION_EVENT_TYPES:
            logger.warning(f"Invalid event_type {event_type!r}")

        location_text = event.get("location_text")
        address = location_text or build_address_string(
            event.get("location_json"), event.get("approximate_location")
        )
        if not address:
            logger.warning("No location info provided, skipping geocode")
            return {"updated": False, "reason": "no_location"}

        call_id = event.get("incident_id")
        incident = await self.store.get_by_call_id(call_id) if call_id else None
        if incident is None:
            logger.warning(f"Location event for unknown incident {call_id!r}")
            return {"updated": False, "reason": "unknown_incident"}
        if incident.is_closed:
            return {"updated": False, "reason": "closed"}

        resolved = await self.resolver.resolve(address)
        if resolved:
            incident.location_lat = resolved.lat
            incident.location_lon = resolved.lng
            incident.location_text = resolved.formatted_address or address
        elif location_text:
            # Keep the description even without coordinates
            incident.location_text = location_text
        else:
            return {"updated": False, "reason": "unresolved"}

        incident.touch()
        await self.store.upsert(incident)
        logger.info(f"📍 Location updated for {call_id}")
        return {"updated": True, "resolved": resolved is not None}

    # --- OPERATOR ACTIONS ---
    async def record_action(
        self,
        incident_id: str,
        responder_id: str,
        action_type: str,
        action_data: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> IncidentAction:
        try:
            kind = ActionType(action_type)
        except ValueError:
            raise InvalidActionError(f"Unknown action type {action_type!r}")

        action_data = action_data or {}
        incident = await self._require(incident_id)

        if kind == ActionType.MARK_SAFE:
            incident.close()
            await self.store.upsert(incident)
            self.reconciler.halt(incident_id)

        elif kind == ActionType.ESCALATE:
            incident.status = IncidentStatus.HUMAN_ACTIVE
            if "priority" in action_data:
                try:
                    incident.priority = Priority(str(action_data["priority"]).lower())
                except ValueError:
                    raise InvalidActionError(f"Invalid priority {action_data['priority']!r}")
            incident.touch()
            await self.store.upsert(incident)

        elif kind == ActionType.FIELD_EDIT:
            await self._apply_field_edit(incident, responder_id, action_data)

        elif kind == ActionType.NOTE:
            note = str(action_data.get("note") or "").strip()
            if not note:
                raise InvalidActionError("Note action needs a non-empty 'note'")
            incident.notes = f"{incident.notes}\n{note}" if incident.notes else note
            incident.touch()
            await self.store.upsert(incident)

        action = IncidentAction(
            incident_id=incident_id,
            responder_id=responder_id,
            action_type=kind,
            action_data=action_data,
            reason=reason,
        )
        return await self.store.append_action(action)

    async def _apply_field_edit(self, incident: Incident, responder_id: str, action_data: Dict[str, Any]):
        field_name = action_data.get("field_name")
        if field_name not in EDITABLE_FIELDS:
            raise InvalidActionError(f"Field {field_name!r} cannot be edited")

        raw_value = action_data.get("value")
        value = self.normalizer.normalize(field_name, raw_value)
        # A typed-in priority must be legal, not silently defaulted
        if field_name == "priority" and str(raw_value).lower() != value:
            value = REJECTED
        if value is REJECTED:
            raise InvalidActionError(f"Invalid value {raw_value!r} for {field_name}")

        setattr(incident, field_name, value)
        incident.touch()
        await self.store.upsert(incident)
        await self.store.upsert_field_record(
            incident.id, field_name, value, confidence=1.0, verified_by=responder_id
        )

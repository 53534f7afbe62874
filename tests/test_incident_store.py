import pytest

from sentinel.models.enums import ActionType, Priority
from sentinel.models.incident import Incident, IncidentAction
from sentinel.services.incident_store import FIELD_CHANGED, INCIDENT_CHANGED, InMemoryIncidentStore


@pytest.mark.asyncio
async def test_records_are_copied_in_and_out():
    store = InMemoryIncidentStore()
    incident = Incident(call_id="CALL-1")
    await store.upsert(incident)

    incident.priority = Priority.CRITICAL
    fetched = await store.get(incident.id)
    assert fetched.priority == Priority.MEDIUM

    fetched.priority = Priority.LOW
    assert (await store.get(incident.id)).priority == Priority.MEDIUM


@pytest.mark.asyncio
async def test_lookup_by_call_id():
    store = InMemoryIncidentStore()
    incident = await store.upsert(Incident(call_id="CALL-42"))
    assert (await store.get_by_call_id("CALL-42")).id == incident.id
    assert await store.get_by_call_id("nope") is None


@pytest.mark.asyncio
async def test_field_record_is_upserted_with_previous_value():
    store = InMemoryIncidentStore()
    await store.upsert_field_record("inc-1", "priority", "medium", 0.85)
    await store.upsert_field_record("inc-1", "priority", Priority.HIGH, 0.85)
    await store.upsert_field_record("inc-1", "medical_emergency", True, 0.85)

    records = {r.field_name: r for r in await store.list_field_records("inc-1")}
    assert len(records) == 2
    assert records["priority"].field_value == "high"
    assert records["priority"].previous_value == "medium"
    assert records["medical_emergency"].field_value == "true"


@pytest.mark.asyncio
async def test_verified_by_is_cleared_by_a_later_automated_write():
    store = InMemoryIncidentStore()
    await store.upsert_field_record("inc-1", "caller_name", "Jane", 1.0, verified_by="resp-1")
    record = (await store.list_field_records("inc-1"))[0]
    assert record.verified_by == "resp-1"
    assert record.verified_at is not None

    await store.upsert_field_record("inc-1", "caller_name", "Janet", 0.85)
    record = (await store.list_field_records("inc-1"))[0]
    assert record.verified_by is None
    assert record.previous_value == "Jane"


@pytest.mark.asyncio
async def test_subscribers_are_notified_and_can_unsubscribe():
    store = InMemoryIncidentStore()
    incident = Incident()
    seen, seen_all = [], []

    async def on_any(incident_id, kind, payload):
        seen_all.append(kind)

    unsubscribe = store.subscribe(incident.id, lambda i, kind, payload: seen.append((i, kind)))
    store.subscribe(None, on_any)

    await store.upsert(incident)
    await store.upsert_field_record(incident.id, "incident_type", "Fire", 0.85)
    unsubscribe()
    await store.upsert(incident)

    assert seen == [(incident.id, INCIDENT_CHANGED), (incident.id, FIELD_CHANGED)]
    assert seen_all == [INCIDENT_CHANGED, FIELD_CHANGED, INCIDENT_CHANGED]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_fail_the_write():
    store = InMemoryIncidentStore()

    def broken(incident_id, kind, payload):
        raise RuntimeError("subscriber down")

    store.subscribe(None, broken)
    incident = await store.upsert(Incident())
    assert await store.get(incident.id) is not None


@pytest.mark.asyncio
async def test_actions_are_append_only_per_incident():
    store = InMemoryIncidentStore()
    await store.append_action(IncidentAction(incident_id="inc-1", responder_id="r1", action_type=ActionType.NOTE))
    await store.append_action(IncidentAction(incident_id="inc-1", responder_id="r1", action_type=ActionType.DISPATCH))

    actions = await store.list_actions("inc-1")
    assert [a.action_type for a in actions] == [ActionType.NOTE, ActionType.DISPATCH]
    assert await store.list_actions("inc-2") == []

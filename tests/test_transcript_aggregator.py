import pytest

from sentinel.core.transcript_aggregator import TranscriptAggregator
from sentinel.models.incident import TranscriptUtterance


def utterance(text, speaker="caller", incident_id="inc-1", ts="2026-01-01T00:00:00+00:00"):
    return TranscriptUtterance(incident_id=incident_id, speaker=speaker, text=text, timestamp_iso=ts)


def test_arrival_order_is_kept_even_when_timestamps_disagree():
    agg = TranscriptAggregator()
    agg.append("inc-1", utterance("second in time", ts="2026-01-01T00:00:05+00:00"))
    agg.append("inc-1", utterance("first in time", ts="2026-01-01T00:00:01+00:00"))

    assert [u.text for u in agg.snapshot("inc-1")] == ["second in time", "first in time"]


def test_snapshot_is_point_in_time():
    agg = TranscriptAggregator()
    agg.append("inc-1", utterance("hello"))
    snap = agg.snapshot("inc-1")
    agg.append("inc-1", utterance("there's smoke"))

    assert len(snap) == 1
    assert agg.count("inc-1") == 2


def test_identical_utterances_are_not_deduplicated():
    agg = TranscriptAggregator()
    agg.append("inc-1", utterance("help"))
    agg.append("inc-1", utterance("help"))
    assert agg.count("inc-1") == 2


def test_incidents_are_kept_apart():
    agg = TranscriptAggregator()
    agg.append("inc-1", utterance("a"))
    agg.append("inc-2", utterance("b", incident_id="inc-2"))
    assert agg.count("inc-1") == 1
    assert agg.count("inc-2") == 1
    assert agg.snapshot("missing") == ()


def test_listeners_hear_each_append_with_the_new_count():
    agg = TranscriptAggregator()
    heard = []
    agg.subscribe(lambda incident_id, count: heard.append((incident_id, count)))

    agg.append("inc-1", utterance("a"))
    agg.append("inc-1", utterance("b"))

    assert heard == [("inc-1", 1), ("inc-1", 2)]


def test_failing_listener_does_not_block_append():
    agg = TranscriptAggregator()
    heard = []

    def broken(incident_id, count):
        raise RuntimeError("boom")

    agg.subscribe(broken)
    agg.subscribe(lambda incident_id, count: heard.append(count))

    assert agg.append("inc-1", utterance("a")) is True
    assert heard == [1]


@pytest.mark.asyncio
async def test_published_utterances_are_drained_in_order():
    agg = TranscriptAggregator()
    await agg.start()
    try:
        for text in ("one", "two", "three"):
            await agg.publish(utterance(text))
        await agg.join()
        assert [u.text for u in agg.snapshot("inc-1")] == ["one", "two", "three"]
    finally:
        await agg.stop()


@pytest.mark.asyncio
async def test_publish_without_drain_loop_appends_directly():
    agg = TranscriptAggregator()
    await agg.publish(utterance("direct"))
    assert agg.count("inc-1") == 1

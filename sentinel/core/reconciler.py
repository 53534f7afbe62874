"""
Incident Reconciler

Watches the transcript of every live incident and folds the extraction
oracle's sparse updates into the incident record.

Per incident:
    IDLE -> SCHEDULED -> ANALYZING -> IDLE, and HALTED once closed.

Timing:
    - debounce: a round is scheduled `debounce_seconds` after the last
      utterance; every new utterance pushes it out again.
    - throttle: while the voice session is active, oracle calls start at
      most once per `throttle_seconds`. A round that fires too early is
      deferred to the end of the window. Ending the session lifts it.
    - watermark: the utterance count submitted by the last finished round.
      A round with nothing past the watermark never calls the oracle.
      The watermark advances on failure too; the next utterance retries.

Merge:
    Normalized fields overwrite the matching attributes, absent fields
    are never touched. location_text goes through the address resolver;
    on failure the raw text is kept and existing coordinates survive.
    The incident is written first, then one field record per applied
    field. Field records are skipped when the incident write fails.
"""

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from sentinel.agents.extraction_agent import NoUpdate, OracleError, OracleErrorKind
from sentinel.core.debounce import ResettableTimer
from sentinel.core.errors import StoreWriteError
from sentinel.core.transcript_aggregator import TranscriptAggregator
from sentinel.models.incident import Incident
from sentinel.services.field_normalizer import FieldNormalizer
from sentinel.services.incident_store import IncidentStore

logger = logging.getLogger(__name__)


class AnalysisPhase(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    ANALYZING = "analyzing"
    HALTED = "halted"


class RoundOutcome(str, Enum):
    APPLIED = "applied"
    NO_UPDATE = "no_update"
    SKIPPED = "skipped"
    DEFERRED = "deferred"
    ORACLE_FAILED = "oracle_failed"
    STORE_FAILED = "store_failed"
    HALTED = "halted"


@dataclass
class IncidentAnalysisState:
    incident_id: str
    phase: AnalysisPhase = AnalysisPhase.IDLE
    watermark: int = 0
    analyzing: bool = False
    session_active: bool = False
    last_oracle_call_at: Optional[float] = None
    oracle_calls: int = 0
    # The pending timer is a throttle deferral, not a plain debounce
    throttled: bool = False
    timer: Optional[ResettableTimer] = field(default=None, repr=False, compare=False)


class IncidentReconciler:

    def __init__(
        self,
        store: IncidentStore,
        aggregator: TranscriptAggregator,
        oracle,
        resolver,
        normalizer: Optional[FieldNormalizer] = None,
        debounce_seconds: float = 1.0,
        throttle_seconds: float = 3.0,
        oracle_timeout: float = 15.0,
        confidence: float = 0.85,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.aggregator = aggregator
        self.oracle = oracle
        self.resolver = resolver
        self.normalizer = normalizer or FieldNormalizer()
        self.debounce_seconds = debounce_seconds
        self.throttle_seconds = throttle_seconds
        self.oracle_timeout = oracle_timeout
        self.confidence = confidence
        self.clock = clock

        self._states: Dict[str, IncidentAnalysisState] = {}
        aggregator.subscribe(self.on_utterance)

    # --- STATE ---
    def state_for(self, incident_id: str) -> IncidentAnalysisState:
        """Copy of the analysis state for one incident."""
        return dataclasses.replace(self._state(incident_id))

    def _state(self, incident_id: str) -> IncidentAnalysisState:
        state = self._states.get(incident_id)
        if state is None:
            state = IncidentAnalysisState(incident_id=incident_id)
            self._states[incident_id] = state
        return state

    # --- TRIGGERS ---
    def on_utterance(self, incident_id: str, count: int):
        state = self._state(incident_id)
        if state.phase == AnalysisPhase.HALTED:
            return
        self._schedule(state, self.debounce_seconds)

    def start_session(self, incident_id: str):
        self._state(incident_id).session_active = True

    def end_session(self, incident_id: str):
        """Lift the throttle. An in-flight round keeps running."""
        state = self._state(incident_id)
        state.session_active = False
        if state.phase == AnalysisPhase.HALTED:
            return

        timer_pending = state.timer is not None and state.timer.pending
        if timer_pending and state.throttled:
            self._schedule(state, self.debounce_seconds)
        elif not timer_pending and not state.analyzing:
            if self.aggregator.count(incident_id) > state.watermark:
                self._schedule(state, self.debounce_seconds)

    def halt(self, incident_id: str):
        state = self._state(incident_id)
        if state.timer:
            state.timer.cancel()
        state.throttled = False
        if state.phase != AnalysisPhase.HALTED:
            logger.info(f"🛑 Reconciler halted for {incident_id}")
        state.phase = AnalysisPhase.HALTED

    def _schedule(self, state: IncidentAnalysisState, delay: float, throttled: bool = False):
        if state.timer is None:
            incident_id = state.incident_id
            state.timer = ResettableTimer(
                lambda: self.run_round(incident_id),
                name=f"reconcile:{incident_id}",
            )
        state.timer.reset(delay)
        state.throttled = throttled
        if not state.analyzing:
            state.phase = AnalysisPhase.SCHEDULED

    # --- ROUND ---
    async def run_round(self, incident_id: str) -> RoundOutcome:
        state = self._state(incident_id)
        if state.phase == AnalysisPhase.HALTED:
            return RoundOutcome.HALTED
        if state.analyzing:
            # The finishing round picks up whatever arrived meanwhile
            return RoundOutcome.SKIPPED

        count = self.aggregator.count(incident_id)
        if count == 0 or count == state.watermark:
            self._settle(state)
            return RoundOutcome.SKIPPED

        if state.session_active and state.last_oracle_call_at is not None:
            elapsed = self.clock() - state.last_oracle_call_at
            if elapsed < self.throttle_seconds:
                wait = self.throttle_seconds - elapsed
                logger.debug(f"Throttled {incident_id}, next round in {wait:.2f}s")
                self._schedule(state, wait, throttled=True)
                return RoundOutcome.DEFERRED

        snapshot = self.aggregator.snapshot(incident_id)
        state.analyzing = True
        state.throttled = False
        state.phase = AnalysisPhase.ANALYZING
        outcome = RoundOutcome.ORACLE_FAILED
        try:
            incident = await self.store.get(incident_id)
            if incident is not None and incident.is_closed:
                self.halt(incident_id)
                outcome = RoundOutcome.HALTED
            else:
                state.last_oracle_call_at = self.clock()
                state.oracle_calls += 1
                logger.info(f"🔎 Analyzing {incident_id} ({len(snapshot)} utterances)")
                outcome = await self._analyze(incident_id, snapshot)
        except Exception:
            logger.exception(f"Reconciliation round failed for {incident_id}")
        finally:
            state.watermark = len(snapshot)
            state.analyzing = False
            self._settle(state)

        logger.info(f"Round for {incident_id} finished: {outcome.value}")
        return outcome

    def _settle(self, state: IncidentAnalysisState):
        if state.phase == AnalysisPhase.HALTED:
            return
        if state.timer is not None and state.timer.pending:
            state.phase = AnalysisPhase.SCHEDULED
        elif self.aggregator.count(state.incident_id) > state.watermark:
            self._schedule(state, self.debounce_seconds)
        else:
            state.phase = AnalysisPhase.IDLE

    async def _analyze(self, incident_id: str, snapshot) -> RoundOutcome:
        try:
            result = await asyncio.wait_for(self.oracle.extract(snapshot), timeout=self.oracle_timeout)
        except asyncio.TimeoutError:
            result = OracleError(error=OracleErrorKind.TIMEOUT, detail=f"no answer within {self.oracle_timeout}s")

        if isinstance(result, OracleError):
            logger.warning(f"Oracle failed for {incident_id}: {result.error.value} {result.detail}")
            return RoundOutcome.ORACLE_FAILED
        if isinstance(result, NoUpdate):
            logger.info(f"No update for {incident_id}: {result.reason}")
            return RoundOutcome.NO_UPDATE

        return await self.apply_extraction(incident_id, result.fields)

    # --- MERGE ---
    async def apply_extraction(self, incident_id: str, raw_update: Dict[str, Any]) -> RoundOutcome:
        fields = self.normalizer.normalize_update(raw_update)
        if not fields:
            return RoundOutcome.NO_UPDATE

        if "location_text" in fields:
            resolved = await self.resolver.resolve(fields["location_text"])
            if resolved:
                if resolved.formatted_address:
                    fields["location_text"] = resolved.formatted_address
                fields["location_lat"] = resolved.lat
                fields["location_lon"] = resolved.lng

        incident = await self.store.get(incident_id)
        if incident is None:
            logger.info(f"Creating incident {incident_id} from extraction")
            incident = self._new_incident(incident_id)
        elif incident.is_closed:
            self.halt(incident_id)
            return RoundOutcome.HALTED

        for key, value in fields.items():
            setattr(incident, key, value)
        incident.ai_confidence_avg = self.confidence
        incident.touch()

        try:
            await self.store.upsert(incident)
        except StoreWriteError as e:
            logger.error(f"Incident write rejected for {incident_id}: {e}")
            return RoundOutcome.STORE_FAILED

        for key, value in fields.items():
            try:
                await self.store.upsert_field_record(incident_id, key, value, self.confidence)
            except Exception:
                logger.exception(f"Field record upsert failed for {incident_id}/{key}")

        logger.info(f"✅ Applied {sorted(fields)} to {incident_id}")
        return RoundOutcome.APPLIED

    def _new_incident(self, incident_id: str) -> Incident:
        return Incident(
            id=incident_id,
            caller_name="Anonymous",
            incident_type="Unknown",
            location_text="Identifying...",
        )

    # --- LIFECYCLE ---
    async def wait_idle(self, timeout: float = 10.0):
        """Block until no round is pending or running for any incident."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while any(s.timer is not None and s.timer.busy for s in self._states.values()):
            if loop.time() > deadline:
                raise asyncio.TimeoutError("reconciler did not settle")
            await asyncio.sleep(0.01)

    def shutdown(self):
        """Cancel pending rounds. Rounds already analyzing run to completion."""
        for state in self._states.values():
            if state.timer:
                state.timer.cancel()

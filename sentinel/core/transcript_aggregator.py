import asyncio
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Tuple

from sentinel.models.incident import TranscriptUtterance

logger = logging.getLogger(__name__)

# listener(incident_id, utterance_count)
UtteranceListener = Callable[[str, int], None]


class TranscriptAggregator:
    """
    Collects speaker-tagged utterances per incident in arrival order.

    The voice transport publishes onto a channel that a single drain
    loop consumes; listeners hear about every append. Nothing is
    reordered by timestamp and nothing is deduplicated here.
    """

    def __init__(self):
        self._utterances: Dict[str, List[TranscriptUtterance]] = defaultdict(list)
        self._listeners: List[UtteranceListener] = []
        self._channel: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    def subscribe(self, listener: UtteranceListener):
        self._listeners.append(listener)

    def append(self, incident_id: str, utterance: TranscriptUtterance) -> bool:
        if utterance.incident_id != incident_id:
            utterance = utterance.model_copy(update={"incident_id": incident_id})
        self._utterances[incident_id].append(utterance)
        count = len(self._utterances[incident_id])

        for listener in list(self._listeners):
            try:
                listener(incident_id, count)
            except Exception:
                logger.exception(f"Utterance listener failed for {incident_id}")
        return True

    def snapshot(self, incident_id: str) -> Tuple[TranscriptUtterance, ...]:
        """Point-in-time copy; later appends never show up in it."""
        return tuple(u.model_copy(deep=True) for u in self._utterances.get(incident_id, []))

    def count(self, incident_id: str) -> int:
        return len(self._utterances.get(incident_id, []))

    # --- CHANNEL ---
    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        if self.is_running:
            return
        self._channel = asyncio.Queue()
        self._task = asyncio.create_task(self._drain_loop())

    async def stop(self):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        # Anything still queued was already accepted from the transport
        if self._channel:
            while not self._channel.empty():
                self._append_from_channel(self._channel.get_nowait())
            self._channel = None

    async def publish(self, utterance: TranscriptUtterance):
        """Entry point for the voice transport."""
        if self.is_running:
            await self._channel.put(utterance)
        else:
            self.append(utterance.incident_id, utterance)

    async def join(self):
        """Wait until every published utterance has been appended."""
        if self._channel is not None:
            await self._channel.join()

    async def _drain_loop(self):
        while True:
            utterance = await self._channel.get()
            try:
                self._append_from_channel(utterance)
            finally:
                self._channel.task_done()

    def _append_from_channel(self, utterance: TranscriptUtterance):
        self.append(utterance.incident_id, utterance)

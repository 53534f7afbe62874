import json
import logging
from enum import Enum
from typing import Any, Dict, Literal, Optional, Sequence, Union

import groq
from groq import AsyncGroq
from pydantic import BaseModel, Field

from sentinel.agents.prompts import (
    SENTINEL_SYSTEM_PROMPT,
    SPEAKER_LABELS,
    UPDATE_INCIDENT_FUNCTION,
    UPDATE_INCIDENT_TOOL,
)
from sentinel.models.incident import TranscriptUtterance

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.3-70b-versatile"


class OracleErrorKind(str, Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    MALFORMED = "malformed"
    UNAVAILABLE = "unavailable"


class NoUpdate(BaseModel):
    kind: Literal["no_update"] = "no_update"
    reason: str = ""


class PartialUpdate(BaseModel):
    kind: Literal["partial_update"] = "partial_update"
    fields: Dict[str, Any] = Field(default_factory=dict)


class OracleError(BaseModel):
    kind: Literal["error"] = "error"
    error: OracleErrorKind
    detail: str = ""


OracleResult = Union[NoUpdate, PartialUpdate, OracleError]


def format_conversation(utterances: Sequence[TranscriptUtterance]) -> str:
    """Speaker-labelled transcript, one line per utterance."""
    lines = []
    for u in utterances:
        speaker = u.speaker.value if hasattr(u.speaker, "value") else str(u.speaker)
        lines.append(f"{SPEAKER_LABELS.get(speaker, 'Dispatcher')}: {u.text}")
    return "\n".join(lines)


class ExtractionAgent:
    """
    Extraction oracle client.

    Sends the whole conversation to the LLM with a single tool,
    update_emergency_incident, and turns whatever comes back into one of
    NoUpdate | PartialUpdate | OracleError. Nothing raised by the SDK
    escapes this class.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        timeout: float = 15.0,
        client: Optional[Any] = None,
    ):
        self.model = model
        if client is not None:
            self.client = client
        elif api_key:
            self.client = AsyncGroq(api_key=api_key, timeout=timeout, max_retries=0)
            logger.info(f"🤖 Extraction agent connected to Groq ({self.model})")
        else:
            self.client = None
            logger.warning("Groq client not initialized (no API key), extraction disabled")

    async def extract(self, utterances: Sequence[TranscriptUtterance]) -> OracleResult:
        if self.client is None:
            return OracleError(error=OracleErrorKind.UNAVAILABLE, detail="no oracle client configured")
        if not utterances:
            return NoUpdate(reason="empty transcript")

        messages = self._build_messages(utterances)
        logger.info(f"Groq chat.completions {self.model}: {len(utterances)} utterances")

        try:
            response = await self.client.chat.completions.create(
                messages=messages,
                model=self.model,
                tools=[UPDATE_INCIDENT_TOOL],
                tool_choice="auto",
                temperature=0.0,
            )
        except groq.APITimeoutError as e:
            return OracleError(error=OracleErrorKind.TIMEOUT, detail=str(e))
        except groq.APIError as e:
            return OracleError(error=OracleErrorKind.TRANSPORT, detail=str(e))

        return self.parse_response(response)

    def _build_messages(self, utterances: Sequence[TranscriptUtterance]):
        conversation = format_conversation(utterances)
        return [
            {"role": "system", "content": SENTINEL_SYSTEM_PROMPT},
            {"role": "user", "content": f"Current Transcript:\n{conversation}"},
        ]

    def parse_response(self, response: Any) -> OracleResult:
        """Defensively read the tool calls out of a chat completion."""
        choices = getattr(response, "choices", None)
        if not choices:
            return OracleError(error=OracleErrorKind.MALFORMED, detail="no choices in response")

        message = getattr(choices[0], "message", None)
        tool_calls = getattr(message, "tool_calls", None) or []

        fields: Dict[str, Any] = {}
        matched = False
        for tool_call in tool_calls:
            function = getattr(tool_call, "function", None)
            name = getattr(function, "name", None)
            if name != UPDATE_INCIDENT_FUNCTION:
                logger.info(f"Ignoring call to unexpected function '{name}'")
                continue

            raw_args = getattr(function, "arguments", None)
            try:
                args = json.loads(raw_args) if isinstance(raw_args, str) else raw_args
            except json.JSONDecodeError:
                return OracleError(error=OracleErrorKind.MALFORMED, detail=f"unparseable arguments: {raw_args!r}")
            if not isinstance(args, dict):
                return OracleError(error=OracleErrorKind.MALFORMED, detail=f"arguments are not an object: {raw_args!r}")

            matched = True
            fields.update(args)

        if not matched:
            text = getattr(message, "content", None) or ""
            logger.info(f"No function call in oracle response. Text: {text[:200]}")
            return NoUpdate(reason="no function call")

        return PartialUpdate(fields=fields)

"""
Field Normalizer

Canonicalizes values proposed by the extraction oracle before they are
allowed anywhere near an Incident. Every function here is pure.

Policy per field:
    priority          -> lower-cased, must be low|medium|high|critical.
                         Anything else degrades to "medium" instead of
                         being dropped: an urgency signal is never lost.
    weapons_present   -> lower-cased, must be yes|no|unknown, else dropped.
    impact_category   -> lower-cased then capitalized, must be
                         None|Low|Medium|High, else dropped.
    number_of_victims -> non-negative integer, else dropped.
    medical_emergency -> boolean (accepts "true"/"false"/"yes"/"no").
    free text fields  -> passed through when non-empty.
    summary / notes   -> both land on Incident.notes; notes wins.
"""

import logging
from typing import Any, Dict

from sentinel.models.enums import ImpactCategory, Priority, WeaponsPresent

logger = logging.getLogger(__name__)


class _Rejected:
    """Marker returned when a proposed value must not be applied."""

    def __repr__(self):
        return "REJECTED"

    def __bool__(self):
        return False


REJECTED = _Rejected()

PRIORITY_VALUES = {p.value for p in Priority}
WEAPONS_VALUES = {w.value for w in WeaponsPresent}
IMPACT_VALUES = {i.value for i in ImpactCategory}
PRIORITY_FALLBACK = Priority.MEDIUM.value

TEXT_FIELDS = ("caller_name", "caller_phone", "incident_type", "location_text", "summary", "notes")

# Keys the oracle is allowed to propose
ORACLE_FIELDS = TEXT_FIELDS + (
    "priority",
    "medical_emergency",
    "number_of_victims",
    "weapons_present",
    "impact_category",
)

_TRUE_WORDS = {"true", "yes", "y", "1"}
_FALSE_WORDS = {"false", "no", "n", "0"}


def normalize_priority(raw: Any):
    if raw is None:
        return REJECTED
    value = str(raw).lower()
    if value in PRIORITY_VALUES:
        return value
    logger.warning(f"Invalid priority value {raw!r}, defaulting to {PRIORITY_FALLBACK}")
    return PRIORITY_FALLBACK


def normalize_weapons_present(raw: Any):
    if not isinstance(raw, str):
        return REJECTED
    value = raw.lower()
    if value in WEAPONS_VALUES:
        return value
    logger.warning(f"Invalid weapons_present value {raw!r}, dropping")
    return REJECTED


def normalize_impact_category(raw: Any):
    if not isinstance(raw, str):
        return REJECTED
    value = raw.lower()
    value = value[:1].upper() + value[1:]
    if value in IMPACT_VALUES:
        return value
    logger.warning(f"Invalid impact_category value {raw!r}, dropping")
    return REJECTED


def normalize_number_of_victims(raw: Any):
    # bool is an int subclass; True is not a head count
    if isinstance(raw, bool) or raw is None:
        return REJECTED
    if isinstance(raw, float):
        if not raw.is_integer():
            return REJECTED
        raw = int(raw)
    elif isinstance(raw, str):
        raw = raw.strip()
        if not raw.isdigit():
            logger.warning(f"Invalid number_of_victims value {raw!r}, dropping")
            return REJECTED
        raw = int(raw)
    if not isinstance(raw, int) or raw < 0:
        logger.warning(f"Invalid number_of_victims value {raw!r}, dropping")
        return REJECTED
    return raw


def normalize_medical_emergency(raw: Any):
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        word = raw.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return REJECTED


def normalize_text(raw: Any):
    if isinstance(raw, bool) or raw is None:
        return REJECTED
    if isinstance(raw, (int, float)):
        raw = str(raw)
    if not isinstance(raw, str) or not raw.strip():
        return REJECTED
    return raw


_NORMALIZERS = {
    "priority": normalize_priority,
    "weapons_present": normalize_weapons_present,
    "impact_category": normalize_impact_category,
    "number_of_victims": normalize_number_of_victims,
    "medical_emergency": normalize_medical_emergency,
}


class FieldNormalizer:
    """Validates sparse oracle updates field by field."""

    def normalize(self, field_name: str, raw_value: Any):
        """Return the canonical value for `field_name`, or REJECTED."""
        if field_name not in ORACLE_FIELDS:
            return REJECTED
        handler = _NORMALIZERS.get(field_name, normalize_text)
        return handler(raw_value)

    def normalize_update(self, update: Dict[str, Any]) -> Dict[str, Any]:
        """
        Turn a raw sparse update into Incident attribute writes.

        Bad fields are dropped one by one; the rest of the batch survives.
        Returned keys are Incident attribute names (summary -> notes).
        """
        applied: Dict[str, Any] = {}
        for field_name, raw_value in update.items():
            if field_name in ("summary", "notes"):
                continue
            if field_name not in ORACLE_FIELDS:
                logger.info(f"Ignoring unknown extracted field '{field_name}'")
                continue
            value = self.normalize(field_name, raw_value)
            if value is REJECTED:
                logger.warning(f"Dropped field '{field_name}' with value {raw_value!r}")
                continue
            applied[field_name] = value

        # summary and notes share one attribute; notes takes precedence
        for alias in ("summary", "notes"):
            if alias in update:
                value = self.normalize(alias, update[alias])
                if value is not REJECTED:
                    applied["notes"] = value

        return applied

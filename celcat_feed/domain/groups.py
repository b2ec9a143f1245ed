"""Group value normalization and validation."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from ..core.config_manager import MAX_GROUPS_PER_REQUEST
from .models import GroupRef

logger = logging.getLogger(__name__)

COMPOSITE_SEPARATOR = "::"

_SUSPICIOUS_MARKERS = ("<script", "javascript:", "\0")


def normalize_group_value(value: Any) -> Optional[GroupRef]:
    """Turn a string, ``"id::label"`` composite or mapping into a ``GroupRef``.

    Mappings may carry ``id``, ``label`` and/or ``text``; the id falls back to
    the label, the label to the id.

    Returns:
        GroupRef, or None when no id can be derived
    """
    if value is None:
        return None

    if isinstance(value, GroupRef):
        return value if value.id else None

    if isinstance(value, Mapping):
        raw_id = value.get("id") or value.get("label") or value.get("text") or ""
        raw_label = value.get("label") or value.get("text") or value.get("id") or ""
        group_id = str(raw_id).strip()
        label = str(raw_label).strip() or group_id
    else:
        raw = str(value).strip()
        if COMPOSITE_SEPARATOR in raw:
            id_part, _, rest = raw.partition(COMPOSITE_SEPARATOR)
            group_id = id_part.strip()
            label = rest.strip() or group_id
        else:
            group_id = label = raw

    if not group_id:
        return None
    return GroupRef(id=group_id, label=label)


def is_valid_group_name(name: str) -> bool:
    """Reject empty names and values that look like injection attempts."""
    if not name:
        return False
    lowered = name.lower()
    if any(marker in lowered for marker in _SUSPICIOUS_MARKERS):
        logger.error("Rejected suspicious group value: %r", name[:80])
        return False
    return True


def parse_group_param(raw: Optional[str], limit: int = MAX_GROUPS_PER_REQUEST) -> list[str]:
    """Split a comma-separated ``group`` query value.

    Entries are trimmed, empty entries dropped and the list truncated to ``limit``.
    """
    if not raw:
        return []
    groups = [part.strip() for part in raw.split(",")]
    return [group for group in groups if group][:limit]


def resolve_groups(values: Iterable[Any], limit: int = MAX_GROUPS_PER_REQUEST) -> list[GroupRef]:
    """Truncate to ``limit`` values, then normalize and drop invalid ones."""
    refs: list[GroupRef] = []
    for value in list(values)[:limit]:
        ref = normalize_group_value(value)
        if ref is None or not is_valid_group_name(ref.id):
            continue
        refs.append(ref)
    return refs

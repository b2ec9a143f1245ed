"""Per-user customization rules applied to processed events."""

from __future__ import annotations

import re
from typing import Optional

from .models import ProcessedEvent, UserCustomization

_PREFIX_RE = re.compile(r"^([A-Z]+(?:\s+[A-Za-z]+)?)\s+-\s+(.+)$", re.DOTALL)


def is_hidden_by_rule(event: ProcessedEvent, customization: UserCustomization) -> bool:
    for rule in customization.hidden_rules:
        if not rule.value:
            continue
        if rule.rule_type == "name" and event.summary == rule.value:
            return True
        if rule.rule_type == "professor" and rule.value in event.summary:
            return True
    return False


def remap_type_prefix(event: ProcessedEvent, mappings: dict[str, str]) -> str:
    """Rewrite the type prefix of ``event.summary`` using ``mappings``.

    ``"TD - Algo"`` with ``{"TD": "Travaux dirigés"}`` becomes
    ``"Travaux dirigés - Algo"``; an empty replacement drops the prefix.
    A summary without a prefix gets the mapped label for its event type
    prepended.
    """
    summary = event.summary
    key = event.type_prefix or event.event_type

    if event.type_prefix and summary.startswith(f"{event.type_prefix} - "):
        if event.type_prefix not in mappings:
            return summary
        rest = summary[len(event.type_prefix) + 3 :]
        new_prefix = mappings[event.type_prefix]
        return f"{new_prefix} - {rest}" if new_prefix else rest

    match = _PREFIX_RE.match(summary)
    if match and match.group(1) in mappings:
        new_prefix = mappings[match.group(1)]
        return f"{new_prefix} - {match.group(2)}" if new_prefix else match.group(2)

    new_prefix = mappings.get(key)
    if new_prefix and not summary.startswith(new_prefix):
        return f"{new_prefix} - {summary}"
    return summary


def apply_customizations(
    event: ProcessedEvent, customization: UserCustomization
) -> Optional[ProcessedEvent]:
    """Apply hide/rename/remap rules.

    Order: hidden rules drop the event; an id-specific custom name wins;
    otherwise an exact-summary renaming rule; otherwise the type mapping.

    Returns:
        The customized event (a copy), or None when a hidden rule matches
    """
    if is_hidden_by_rule(event, customization):
        return None

    custom_name = customization.custom_names.get(event.id)
    if custom_name:
        return event.model_copy(update={"summary": custom_name})

    renamed = customization.renaming_rules.get(event.summary)
    if renamed:
        return event.model_copy(update={"summary": renamed})

    if customization.type_mappings:
        remapped = remap_type_prefix(event, customization.type_mappings)
        if remapped != event.summary:
            return event.model_copy(update={"summary": remapped})

    return event

"""Data models for the calendar feed pipeline."""

import logging
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        text = str(value)
        return text if text.strip() else None
    return None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if isinstance(item, (str, int, float)) and str(item).strip()]


class RawEvent(BaseModel):
    """One untrusted event record as returned by CELCAT.

    Every field is optional; malformed values are coerced to ``None`` or an
    empty list instead of failing validation.
    """

    id: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    description: str = ""
    event_category: str = Field(default="", alias="eventCategory")
    modules: list[str] = Field(default_factory=list)
    sites: list[str] = Field(default_factory=list)
    all_day: bool = Field(default=False, alias="allDay")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("id", "start", "end", mode="before")
    @classmethod
    def _coerce_optional_str(cls, v: Any) -> Optional[str]:
        return _str_or_none(v)

    @field_validator("description", "event_category", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> str:
        return _str_or_none(v) or ""

    @field_validator("modules", "sites", mode="before")
    @classmethod
    def _coerce_list(cls, v: Any) -> list[str]:
        return _str_list(v)

    @field_validator("all_day", mode="before")
    @classmethod
    def _coerce_bool(cls, v: Any) -> bool:
        return v is True or (isinstance(v, str) and v.lower() == "true")

    @classmethod
    def from_payload(cls, data: Any) -> Optional["RawEvent"]:
        """Validate a decoded record, returning None for non-objects."""
        if not isinstance(data, dict):
            return None
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            logger.debug("Dropping malformed CELCAT record: %s", e)
            return None


class ProcessedEvent(BaseModel):
    """User-facing event produced by the transformer."""

    id: str
    start: datetime
    end: datetime
    summary: str
    description: str = ""
    location: str = ""
    event_type: str = "Other"
    type_prefix: str = ""
    is_holiday: bool = False
    all_day: bool = False


class HiddenRule(BaseModel):
    """Hide events whose summary equals (``name``) or contains (``professor``) ``value``."""

    rule_type: Literal["name", "professor"] = Field(alias="ruleType")
    value: str

    model_config = ConfigDict(populate_by_name=True)


class UserCustomization(BaseModel):
    """Per-request customization options; read-only input to the transformer."""

    hidden_event_ids: frozenset[str] = Field(default_factory=frozenset)
    hidden_rules: list[HiddenRule] = Field(default_factory=list)
    custom_names: dict[str, str] = Field(default_factory=dict)
    renaming_rules: dict[str, str] = Field(default_factory=dict)
    type_mappings: dict[str, str] = Field(default_factory=dict)
    color_map: dict[str, str] = Field(default_factory=dict)
    show_holidays: bool = False

    model_config = ConfigDict(frozen=True)


class GroupRef(BaseModel):
    """Canonical group identity after normalization."""

    id: str
    label: str

    model_config = ConfigDict(frozen=True)


class GroupSearchItem(BaseModel):
    """One group returned by the CELCAT resource search."""

    id: str
    text: str

    model_config = ConfigDict(frozen=True)


class UserPreferences(BaseModel):
    """Stored preferences for one feed token."""

    groups: list[Any] = Field(default_factory=list)
    hidden_events: list[str] = Field(default_factory=list, alias="hiddenEvents")
    show_holidays: Optional[bool] = Field(default=None, alias="showHolidays")
    color_map: dict[str, str] = Field(default_factory=dict, alias="colorMap")
    custom_names: dict[str, str] = Field(default_factory=dict, alias="customNames")
    hidden_rules: list[HiddenRule] = Field(default_factory=list, alias="hiddenRules")
    renaming_rules: dict[str, str] = Field(default_factory=dict, alias="renamingRules")
    type_mappings: dict[str, str] = Field(default_factory=dict, alias="typeMappings")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_customization(self, show_holidays: bool = False) -> UserCustomization:
        """Build transformer options.

        A stored ``showHolidays`` value wins over the ``show_holidays`` argument.
        """
        effective_holidays = self.show_holidays if self.show_holidays is not None else show_holidays
        return UserCustomization(
            hidden_event_ids=frozenset(self.hidden_events),
            hidden_rules=list(self.hidden_rules),
            custom_names=dict(self.custom_names),
            renaming_rules=dict(self.renaming_rules),
            type_mappings=dict(self.type_mappings),
            color_map=dict(self.color_map),
            show_holidays=effective_holidays,
        )

"""
Routing conditions and the work items they are matched against.

A rule's (condition_type, condition_value) pair is parsed into one of the
condition models below, discriminated by ``type``. Field conditions compare
one work item attribute by exact string equality; a value of None or "*" is
a wildcard. Custom conditions name a predicate.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Callable, ClassVar, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

WILDCARD = "*"

Predicate = Callable[["WorkItem"], bool]


class Badge(str, Enum):
    AT_RISK = "at-risk"
    OPPORTUNITY = "opportunity"
    LEAD = "lead"
    FOLLOW_UP = "follow-up"
    NO_ACTION = "no-action"


class Channel(str, Enum):
    PHONE = "phone"
    EMAIL = "email"
    CHAT = "chat"
    VIDEO = "video"
    SMS = "sms"
    AI_CALL = "ai-call"
    VOICE_MESSAGE = "voice-message"


class ConditionType(str, Enum):
    BADGE = "badge"
    INTENT = "intent"
    URGENCY = "urgency"
    CUSTOMER_SEGMENT = "customer_segment"
    CHANNEL = "channel"
    CUSTOM = "custom"


def is_wildcard(value: Optional[str]) -> bool:
    return value is None or value == WILDCARD


@dataclass(frozen=True)
class WorkItem:
    """
    The routable attributes of an action plan.

    ``custom`` holds precomputed flags for custom predicates; ``lookup``, when
    given, is consulted instead.
    """

    badge: Optional[str] = None
    intent: Optional[str] = None
    urgency: Optional[str] = None
    customer_segment: Optional[str] = None
    channel: Optional[str] = None
    custom: Mapping[str, bool] = field(default_factory=dict)
    lookup: Optional[Callable[[str], bool]] = None

    def custom_lookup(self, name: str) -> bool:
        if self.lookup is not None:
            return bool(self.lookup(name))
        return bool(self.custom.get(name, False))

    @classmethod
    def from_action_plan(cls, plan: Any) -> "WorkItem":
        """Build a work item from an ActionPlanModel (or anything shaped like it)."""
        metadata = plan.routing_metadata or {}
        return cls(
            badge=plan.badge,
            intent=plan.intent,
            urgency=plan.urgency,
            customer_segment=plan.customer_segment,
            channel=plan.channel,
            custom=dict(metadata.get("custom") or {}),
        )


class _FieldCondition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    field_name: ClassVar[str]
    value: Optional[str] = None

    def matches(self, item: WorkItem, predicates: Mapping[str, Predicate]) -> bool:
        if is_wildcard(self.value):
            return True
        return getattr(item, self.field_name) == self.value


class BadgeCondition(_FieldCondition):
    type: Literal["badge"] = "badge"
    field_name: ClassVar[str] = "badge"

    @field_validator("value")
    @classmethod
    def _known_badge(cls, v: Optional[str]) -> Optional[str]:
        if not is_wildcard(v):
            Badge(v)
        return v


class IntentCondition(_FieldCondition):
    type: Literal["intent"] = "intent"
    field_name: ClassVar[str] = "intent"


class UrgencyCondition(_FieldCondition):
    type: Literal["urgency"] = "urgency"
    field_name: ClassVar[str] = "urgency"


class CustomerSegmentCondition(_FieldCondition):
    type: Literal["customer_segment"] = "customer_segment"
    field_name: ClassVar[str] = "customer_segment"


class ChannelCondition(_FieldCondition):
    type: Literal["channel"] = "channel"
    field_name: ClassVar[str] = "channel"

    @field_validator("value")
    @classmethod
    def _known_channel(cls, v: Optional[str]) -> Optional[str]:
        if not is_wildcard(v):
            Channel(v)
        return v


class CustomCondition(BaseModel):
    """Matches when the named predicate holds for the work item."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["custom"] = "custom"
    value: Optional[str] = None

    def matches(self, item: WorkItem, predicates: Mapping[str, Predicate]) -> bool:
        if is_wildcard(self.value):
            return True
        if item.custom_lookup(self.value):
            return True
        predicate = predicates.get(self.value)
        return bool(predicate is not None and predicate(item))


Condition = Annotated[
    Union[
        BadgeCondition,
        IntentCondition,
        UrgencyCondition,
        CustomerSegmentCondition,
        ChannelCondition,
        CustomCondition,
    ],
    Field(discriminator="type"),
]

_condition_adapter: TypeAdapter = TypeAdapter(Condition)


def parse_condition(condition_type: str, condition_value: Optional[str]) -> Condition:
    """Build the condition model for a stored rule.

    Raises:
        pydantic.ValidationError: unknown type, or a badge/channel value
            outside its vocabulary
    """
    if isinstance(condition_type, Enum):
        condition_type = condition_type.value
    payload: Dict[str, Any] = {"type": condition_type, "value": condition_value}
    return _condition_adapter.validate_python(payload)

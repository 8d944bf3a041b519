"""Pydantic schemas for notification rules and notifications."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator

from backoffice.core.constants import MAX_RISK_LEVEL


class TimeRange(BaseModel):
    start: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    end: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")


class FrequencyLimit(BaseModel):
    """At most ``max_count`` notifications per activity type per ``window`` seconds."""

    window: int = Field(3600, ge=60)
    max_count: int = Field(10, ge=1)


class RuleConditions(BaseModel):
    activity_types: list[str] = Field(default_factory=list)
    min_risk_level: int | None = Field(None, ge=1, le=MAX_RISK_LEVEL)
    modules: list[str] = Field(default_factory=list)
    user_ids: list[UUID] = Field(default_factory=list)
    ip_pattern: str | None = None
    ip_patterns: list[str] = Field(default_factory=list)
    time_range: TimeRange | None = None
    results: list[Literal["success", "failed", "warning"]] = Field(default_factory=list)
    frequency_limit: FrequencyLimit | None = None


class RuleAction(BaseModel):
    type: Literal["in_app", "webhook", "security_alert"]
    url: HttpUrl | None = None
    user_ids: list[UUID] = Field(default_factory=list)
    title_template: str | None = None
    message_template: str | None = None

    @model_validator(mode="after")
    def _webhook_needs_url(self) -> "RuleAction":
        if self.type == "webhook" and self.url is None:
            raise ValueError("webhook actions require a url")
        return self


class NotificationRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=255)
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    actions: list[RuleAction] = Field(..., min_length=1)
    priority: int = Field(2, ge=1, le=4)
    is_active: bool = True


class NotificationRuleUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=255)
    conditions: RuleConditions | None = None
    actions: list[RuleAction] | None = None
    priority: int | None = Field(None, ge=1, le=4)
    is_active: bool | None = None

    @field_validator("actions")
    @classmethod
    def _actions_not_empty(cls, value: list[RuleAction] | None) -> list[RuleAction] | None:
        if value is not None and not value:
            raise ValueError("a rule needs at least one action")
        return value


class NotificationRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    conditions: dict[str, Any]
    actions: list[dict[str, Any]]
    priority: int
    is_active: bool
    created_by: UUID | None
    triggered_count: int
    last_triggered_at: datetime | None
    created_at: datetime
    updated_at: datetime


class RuleTestRequest(BaseModel):
    activity_id: UUID


class RuleTestResponse(BaseModel):
    """Whether the rule would fire for the activity; nothing is sent."""

    matches: bool
    failed_conditions: list[str]


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    message: str
    type: str
    priority: str
    data: dict[str, Any] | None
    read_at: datetime | None
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    total: int
    unread: int
    page: int
    page_size: int


class MarkAllReadResponse(BaseModel):
    marked: int

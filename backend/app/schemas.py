"""
Pydantic schemas for request/response validation
"""
from pydantic import AliasChoices, BaseModel, Field, ValidationInfo, field_validator
from typing import Any, List, Literal, Optional
from datetime import datetime

from .config import settings

# ===== Common Schemas =====

class HealthResponse(BaseModel):
    status: str

class VersionResponse(BaseModel):
    version: str


def as_short_string(value: Any, field_name: str, max_len: Optional[int] = None) -> str:
    """Trim a required short text field, rejecting non-strings, blanks and overlong values."""
    limit = max_len or settings.MAX_FIELD_LEN
    if not isinstance(value, str):
        raise ValueError(f"Field '{field_name}' must be a string")
    trimmed = value.strip()
    if not trimmed:
        raise ValueError(f"Field '{field_name}' is required")
    if len(trimmed) > limit:
        raise ValueError(f"Field '{field_name}' is too long (max {limit} chars)")
    return trimmed

# ===== Plan Schemas =====

class GenerateRequest(BaseModel):
    industry: str
    location: str = Field(validation_alias=AliasChoices("location", "location_or_budget"))
    vision: Optional[str] = None
    language: Literal["en", "id"] = "en"

    @field_validator("industry", "location", mode="before")
    @classmethod
    def _required_short_string(cls, value: Any, info: ValidationInfo) -> str:
        return as_short_string(value, info.field_name)

    @field_validator("vision", mode="before")
    @classmethod
    def _optional_short_string(cls, value: Any, info: ValidationInfo) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, str) and not value.strip():
            return None
        return as_short_string(value, info.field_name)

    def to_inputs(self) -> "PlanInputs":
        return PlanInputs(
            industry=self.industry,
            location=self.location,
            vision=self.vision,
            language=self.language,
        )


class PlanInputs(BaseModel):
    """Validated inputs handed to the generation worker."""
    industry: str
    location: str
    vision: Optional[str] = None
    language: Literal["en", "id"] = "en"


class JobAccepted(BaseModel):
    jobId: str


class PlanRow(BaseModel):
    """Plan row as stored, returned while the plan is not done."""
    id: str
    status: str
    industry: str
    location: str
    vision: Optional[str] = None
    language: str
    plan_format: str
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

# ===== Mentor Schemas =====

class MentorMessage(BaseModel):
    role: Literal["user", "model"]
    text: str = Field(min_length=1, max_length=4000)


class MentorRequest(BaseModel):
    message: str
    history: List[MentorMessage] = Field(default_factory=list, max_length=40)

    @field_validator("message", mode="before")
    @classmethod
    def _message_short_string(cls, value: Any, info: ValidationInfo) -> str:
        return as_short_string(value, info.field_name, max_len=4000)


class MentorReply(BaseModel):
    reply: str

from typing import Any

from pydantic import BaseModel


class FieldUpdate(BaseModel):
    field: str
    value: Any


class PreferenceToggle(BaseModel):
    value: str


class AnswerRequest(BaseModel):
    value: bool | float | str


class DerivedMetrics(BaseModel):
    bmi: float | None = None
    bmi_category: str | None = None
    risk_tier: str | None = None
    risk_severity: str | None = None


class SessionState(BaseModel):
    session_id: str
    stage: str
    status: str
    step: int
    total_steps: int
    progress_percent: float
    can_advance: bool
    can_proceed_personal_info: bool
    can_proceed_clarification: bool
    required_answered: int
    required_total: int
    family_condition_count: int
    used_fallback: dict[str, bool]
    derived: DerivedMetrics
    profile: dict[str, Any]


class NavigationResponse(BaseModel):
    moved: bool
    state: SessionState

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel


Gender = Literal["male", "female", "other"]
SmokingStatus = Literal["never", "former", "current-light", "current-heavy"]
AlcoholConsumption = Literal["none", "light", "moderate", "heavy"]
PhysicalActivity = Literal["sedentary", "light", "moderate", "vigorous"]
QuestionType = Literal["select", "boolean", "slider", "text"]
Severity = Literal["low", "moderate", "high"]


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase JSON (the frontend's naming)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )


class PersonalInfo(CamelModel):
    age: int = Field(default=0, ge=0, le=130)
    gender: Gender = "male"
    weight: float = Field(default=0.0, ge=0)
    height: float = Field(default=0.0, ge=0)
    bmi: float | None = None


class LifestyleFactors(CamelModel):
    smoking_status: SmokingStatus = "never"
    alcohol_consumption: AlcoholConsumption = "none"
    physical_activity: PhysicalActivity = "moderate"
    sleep_hours: int = Field(default=8, ge=4, le=12)
    dietary_preferences: set[str] = Field(default_factory=set)
    stress_level: int = Field(default=5, ge=1, le=10)
    exercise_frequency: int = Field(default=3, ge=0, le=7)

    @field_validator("dietary_preferences", mode="before")
    @classmethod
    def _strip_preferences(cls, value):
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple, set, frozenset)):
            # left for pydantic to reject as a set_type error
            return value
        return {str(item).strip() for item in value if str(item).strip()}

    @field_serializer("dietary_preferences")
    def _sorted_preferences(self, value: set[str]) -> list[str]:
        return sorted(value)


FAMILY_CONDITIONS: tuple[str, ...] = (
    "heart_disease",
    "diabetes",
    "cancer",
    "stroke",
    "alzheimers",
    "osteoporosis",
    "mental_health",
    "autoimmune",
)


class FamilyHistory(CamelModel):
    heart_disease: bool = False
    diabetes: bool = False
    cancer: bool = False
    stroke: bool = False
    alzheimers: bool = False
    osteoporosis: bool = False
    mental_health: bool = False
    autoimmune: bool = False
    other: str = ""


class ClarificationQuestion(CamelModel):
    id: str = Field(min_length=1)
    question: str
    type: QuestionType
    options: list[str] | None = None
    min_value: float | None = Field(default=None, alias="min")
    max_value: float | None = Field(default=None, alias="max")
    unit: str | None = None
    required: bool = False

    @model_validator(mode="after")
    def _check_type_fields(self) -> "ClarificationQuestion":
        if self.type == "select" and not self.options:
            raise ValueError(f"select question {self.id!r} needs options")
        if self.type == "slider":
            if self.min_value is None or self.max_value is None:
                raise ValueError(f"slider question {self.id!r} needs min and max")
            if self.min_value > self.max_value:
                raise ValueError(f"slider question {self.id!r} has min > max")
        return self


class ClarificationBatch(CamelModel):
    """Envelope the generation service returns questions in."""

    questions: list[ClarificationQuestion]

    @field_validator("questions")
    @classmethod
    def _unique_ids(cls, questions: list[ClarificationQuestion]) -> list[ClarificationQuestion]:
        ids = [q.id for q in questions]
        if len(ids) != len(set(ids)):
            raise ValueError("question ids must be unique within a batch")
        return questions


class SelectAnswer(CamelModel):
    type: Literal["select"] = "select"
    value: str


class BooleanAnswer(CamelModel):
    type: Literal["boolean"] = "boolean"
    value: bool


class SliderAnswer(CamelModel):
    type: Literal["slider"] = "slider"
    value: float


class TextAnswer(CamelModel):
    type: Literal["text"] = "text"
    value: str


Answer = Annotated[
    Union[SelectAnswer, BooleanAnswer, SliderAnswer, TextAnswer],
    Field(discriminator="type"),
]


class RiskFactor(CamelModel):
    condition: str
    risk_percentage: int = Field(ge=0, le=100)
    severity: Severity
    explanation: str
    prevention_tips: list[str] = Field(default_factory=list)


class Recommendations(CamelModel):
    lifestyle: list[str] = Field(default_factory=list)
    medical: list[str] = Field(default_factory=list)
    monitoring: list[str] = Field(default_factory=list)


class RiskAssessment(CamelModel):
    overall_risk_score: int = Field(ge=0, le=100)
    risk_factors: list[RiskFactor] = Field(default_factory=list)
    recommendations: Recommendations = Field(default_factory=Recommendations)
    confidence_score: int = Field(ge=0, le=100)


class ProfileInput(CamelModel):
    """What the question generator sees."""

    personal_info: PersonalInfo
    lifestyle_factors: LifestyleFactors
    family_history: FamilyHistory


class AssessmentInput(ProfileInput):
    """What the risk assessor sees: the full profile plus answers."""

    clarification_answers: dict[str, bool | float | str] = Field(default_factory=dict)

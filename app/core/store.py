from __future__ import annotations

from typing import Any, Dict, List, Type

from pydantic import BaseModel, TypeAdapter, ValidationError

from app.api.schemas.profile import (
    Answer,
    AssessmentInput,
    ClarificationQuestion,
    FamilyHistory,
    LifestyleFactors,
    PersonalInfo,
    ProfileInput,
    RiskAssessment,
)
from app.core.metrics import compute_bmi


_answer_adapter: TypeAdapter[Any] = TypeAdapter(Answer)


class ProfileValidationError(ValueError):
    """A field update was rejected; the store is unchanged."""

    def __init__(self, section: str, field: str, message: str):
        self.section = section
        self.field = field
        super().__init__(f"{section}.{field}: {message}")


class InvalidAnswerError(ValueError):
    """An answer does not fit the question it is meant for."""

    def __init__(self, question_id: str, message: str):
        self.question_id = question_id
        super().__init__(f"answer to question {question_id!r}: {message}")


def _resolve_field(model: Type[BaseModel], field: str) -> str | None:
    """Map a snake_case name or its camelCase alias to the attribute name."""
    for name, info in model.model_fields.items():
        if field == name or field == info.alias:
            return name
    return None


class HealthProfileStore:
    """In-memory aggregate of one assessment session.

    Sections are replaced wholesale on every field update so a failed
    validation never leaves a half-written section behind.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.personal_info = PersonalInfo()
        self.lifestyle = LifestyleFactors()
        self.family_history = FamilyHistory()
        self.questions: List[ClarificationQuestion] = []
        self.answers: Dict[str, Any] = {}
        self.assessment: RiskAssessment | None = None

    # ----- profile sections -------------------------------------------------

    def _replace_field(self, section: str, current: BaseModel, field: str, value: Any) -> BaseModel:
        model = type(current)
        name = _resolve_field(model, field)
        if name is None:
            raise ProfileValidationError(section, field, "unknown field")
        data = current.model_dump()
        data[name] = value
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            first = exc.errors()[0]
            raise ProfileValidationError(section, name, first.get("msg", str(exc))) from exc

    def update_personal_info(self, field: str, value: Any) -> PersonalInfo:
        name = _resolve_field(PersonalInfo, field)
        if name == "bmi":
            raise ProfileValidationError("personal_info", "bmi", "bmi is derived from weight and height")
        updated = self._replace_field("personal_info", self.personal_info, field, value)
        if name in {"weight", "height"} and updated.bmi is not None:
            # a stored bmi would no longer match the new measurements
            updated = updated.model_copy(update={"bmi": None})
        self.personal_info = updated
        return updated

    def store_bmi(self) -> float | None:
        bmi = compute_bmi(self.personal_info.weight, self.personal_info.height)
        self.personal_info = self.personal_info.model_copy(update={"bmi": bmi})
        return bmi

    def update_lifestyle(self, field: str, value: Any) -> LifestyleFactors:
        self.lifestyle = self._replace_field("lifestyle", self.lifestyle, field, value)
        return self.lifestyle

    def toggle_dietary_preference(self, preference: str) -> LifestyleFactors:
        current = set(self.lifestyle.dietary_preferences)
        preference = preference.strip()
        if preference in current:
            current.discard(preference)
        else:
            current.add(preference)
        return self.update_lifestyle("dietary_preferences", current)

    def update_family_history(self, field: str, value: Any) -> FamilyHistory:
        self.family_history = self._replace_field("family_history", self.family_history, field, value)
        return self.family_history

    # ----- generated artifacts ----------------------------------------------

    def replace_questions(self, questions: List[ClarificationQuestion]) -> None:
        """Install a new question batch; answers to the old batch are dropped."""
        self.questions = list(questions)
        self.answers = {}

    def replace_assessment(self, assessment: RiskAssessment | None) -> None:
        self.assessment = assessment

    def question(self, question_id: str) -> ClarificationQuestion | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def set_answer(self, question_id: str, value: Any) -> Any:
        """Validate ``value`` against the question's declared type and store it."""
        q = self.question(question_id)
        if q is None:
            raise InvalidAnswerError(question_id, "no such question in the current batch")

        if isinstance(value, bool) != (q.type == "boolean"):
            raise InvalidAnswerError(question_id, f"expected a {q.type} answer")
        if q.type in {"select", "text"} and not isinstance(value, str):
            raise InvalidAnswerError(question_id, f"expected a {q.type} answer")
        try:
            answer = _answer_adapter.validate_python({"type": q.type, "value": value})
        except ValidationError as exc:
            raise InvalidAnswerError(question_id, f"expected a {q.type} answer") from exc

        if q.type == "select" and answer.value != "" and answer.value not in (q.options or []):
            raise InvalidAnswerError(question_id, f"{answer.value!r} is not one of {q.options}")
        if q.type == "slider" and not (q.min_value <= answer.value <= q.max_value):
            raise InvalidAnswerError(question_id, f"{answer.value} is outside [{q.min_value}, {q.max_value}]")

        self.answers[question_id] = answer
        return answer

    def clear_answer(self, question_id: str) -> None:
        self.answers.pop(question_id, None)

    def answer_values(self) -> Dict[str, Any]:
        return {qid: answer.value for qid, answer in self.answers.items()}

    # ----- snapshots ----------------------------------------------------------

    def profile_input(self) -> ProfileInput:
        return ProfileInput(
            personal_info=self.personal_info.model_copy(deep=True),
            lifestyle_factors=self.lifestyle.model_copy(deep=True),
            family_history=self.family_history.model_copy(deep=True),
        )

    def assessment_input(self) -> AssessmentInput:
        base = self.profile_input()
        return AssessmentInput(
            personal_info=base.personal_info,
            lifestyle_factors=base.lifestyle_factors,
            family_history=base.family_history,
            clarification_answers=self.answer_values(),
        )

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready copy of everything the presentation layer renders."""
        return {
            "personalInfo": self.personal_info.model_dump(mode="json", by_alias=True),
            "lifestyleFactors": self.lifestyle.model_dump(mode="json", by_alias=True),
            "familyHistory": self.family_history.model_dump(mode="json", by_alias=True),
            "clarificationQuestions": [
                q.model_dump(mode="json", by_alias=True, exclude_none=True) for q in self.questions
            ],
            "clarificationAnswers": self.answer_values(),
            "riskAssessment": (
                self.assessment.model_dump(mode="json", by_alias=True) if self.assessment else None
            ),
        }

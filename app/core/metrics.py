from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, Mapping, Tuple

from app.api.schemas.profile import FAMILY_CONDITIONS, ClarificationQuestion, FamilyHistory


BMI_CATEGORIES: Tuple[Tuple[float, str], ...] = (
    (18.5, "Underweight"),
    (25.0, "Normal"),
    (30.0, "Overweight"),
)

# Upper bound (inclusive) of each tier; anything above the last is "High Risk".
RISK_TIERS: Tuple[Tuple[int, str], ...] = (
    (20, "Low Risk"),
    (40, "Moderate Risk"),
    (60, "Elevated Risk"),
)


def compute_bmi(weight: float, height: float) -> float | None:
    """Body-mass index rounded to one decimal, or None unless both inputs are > 0.

    weight is in kg, height in cm. Rounds half up so 22.85 -> 22.9.
    """
    if weight <= 0 or height <= 0:
        return None
    meters = Decimal(str(height)) / Decimal(100)
    bmi = Decimal(str(weight)) / (meters * meters)
    return float(bmi.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def bmi_category(bmi: float) -> str:
    for upper, label in BMI_CATEGORIES:
        if bmi < upper:
            return label
    return "Obese"


def risk_tier(score: int) -> str:
    for upper, label in RISK_TIERS:
        if score <= upper:
            return label
    return "High Risk"


def severity_for_score(score: int) -> str:
    """Severity bucket used to colour the overall score on the results page."""
    if score <= 20:
        return "low"
    if score <= 40:
        return "moderate"
    return "high"


def is_answered(value: Any) -> bool:
    return value is not None and value != ""


def required_progress(
    questions: Iterable[ClarificationQuestion],
    answers: Mapping[str, Any],
) -> Tuple[int, int]:
    """Return (answered_required, required_total) for a question batch."""
    required = [q for q in questions if q.required]
    answered = [q for q in required if is_answered(answers.get(q.id))]
    return len(answered), len(required)


def can_proceed(questions: Iterable[ClarificationQuestion], answers: Mapping[str, Any]) -> bool:
    answered, total = required_progress(questions, answers)
    return answered == total


def required_progress_percent(questions: Iterable[ClarificationQuestion], answers: Mapping[str, Any]) -> float:
    answered, total = required_progress(questions, answers)
    if total == 0:
        return 100.0
    return round(answered / total * 100, 1)


def family_condition_count(history: FamilyHistory) -> int:
    return sum(1 for name in FAMILY_CONDITIONS if getattr(history, name))


def summarize(bmi: float | None, overall_risk_score: int | None) -> Dict[str, Any]:
    """Derived values the results view shows next to the raw profile."""
    summary: Dict[str, Any] = {"bmi": bmi, "bmi_category": None, "risk_tier": None, "risk_severity": None}
    if bmi is not None:
        summary["bmi_category"] = bmi_category(bmi)
    if overall_risk_score is not None:
        summary["risk_tier"] = risk_tier(overall_risk_score)
        summary["risk_severity"] = severity_for_score(overall_risk_score)
    return summary

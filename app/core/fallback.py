from __future__ import annotations

from typing import Awaitable, Callable, List, TypeVar

from app.api.schemas.profile import (
    ClarificationQuestion,
    Recommendations,
    RiskAssessment,
    RiskFactor,
)
from app.core.llm import GenerationError
from app.core.log import get_logger


logger = get_logger("fallback")

T = TypeVar("T")


class FallbackPolicy:
    """Fixed substitute content used whenever generation fails.

    Each call builds new objects so callers may keep or mutate what they get.
    """

    def default_questions(self) -> List[ClarificationQuestion]:
        return [
            ClarificationQuestion(
                id="1",
                question="How would you rate your current stress level on a daily basis?",
                type="slider",
                min_value=1,
                max_value=10,
                unit="/10",
                required=True,
            ),
            ClarificationQuestion(
                id="2",
                question="Do you have regular medical checkups?",
                type="boolean",
                required=True,
            ),
            ClarificationQuestion(
                id="3",
                question="How often do you experience headaches or migraines?",
                type="select",
                options=["Never", "Rarely", "Monthly", "Weekly", "Daily"],
                required=False,
            ),
        ]

    def default_assessment(self) -> RiskAssessment:
        return RiskAssessment(
            overall_risk_score=25,
            risk_factors=[
                RiskFactor(
                    condition="Cardiovascular Disease",
                    risk_percentage=15,
                    severity="low",
                    explanation=(
                        "Based on your lifestyle and family history, "
                        "your cardiovascular risk is below average."
                    ),
                    prevention_tips=["Regular exercise", "Healthy diet"],
                )
            ],
            recommendations=Recommendations(
                lifestyle=["Maintain regular exercise routine", "Follow Mediterranean diet"],
                medical=["Annual health checkup", "Blood pressure monitoring"],
                monitoring=["Track heart rate variability", "Monitor cholesterol levels"],
            ),
            confidence_score=85,
        )


async def generate_with_fallback(
    call: Callable[[], Awaitable[T]],
    fallback: Callable[[], T],
    label: str,
) -> tuple[T, bool]:
    """Run one generation attempt; on GenerationError return the fallback.

    Returns ``(value, used_fallback)``. There is no retry.
    """
    try:
        return await call(), False
    except GenerationError as exc:
        logger.warning("Generating %s failed, using fallback content: %s", label, exc)
        return fallback(), True

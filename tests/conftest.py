import asyncio
from typing import List

import pytest

from app.api.schemas.profile import (
    AssessmentInput,
    ClarificationQuestion,
    ProfileInput,
    Recommendations,
    RiskAssessment,
    RiskFactor,
)
from app.core.llm import GenerationClient, GenerationError
from app.core.workflow import Stage, StageController


def make_questions() -> List[ClarificationQuestion]:
    return [
        ClarificationQuestion(id="sleep", question="Do you snore?", type="boolean", required=True),
        ClarificationQuestion(
            id="pain", question="Chest pain frequency?", type="select",
            options=["Never", "Sometimes", "Often"], required=True,
        ),
        ClarificationQuestion(id="notes", question="Anything else?", type="text", required=False),
    ]


def make_assessment(score: int = 55) -> RiskAssessment:
    return RiskAssessment(
        overall_risk_score=score,
        risk_factors=[
            RiskFactor(
                condition="Type 2 Diabetes",
                risk_percentage=40,
                severity="moderate",
                explanation="Family history and BMI.",
                prevention_tips=["Reduce sugar"],
            )
        ],
        recommendations=Recommendations(lifestyle=["Walk daily"], medical=["HbA1c test"], monitoring=["Weight"]),
        confidence_score=70,
    )


class StaticGenerationClient(GenerationClient):
    """Returns canned content and records the profiles it was given."""

    def __init__(self, questions=None, assessment=None):
        self.questions = questions if questions is not None else make_questions()
        self.assessment = assessment or make_assessment()
        self.question_profiles: List[ProfileInput] = []
        self.assessment_profiles: List[AssessmentInput] = []

    async def generate_clarification_questions(self, profile):
        self.question_profiles.append(profile)
        return list(self.questions)

    async def generate_risk_assessment(self, profile):
        self.assessment_profiles.append(profile)
        return self.assessment


class FailingGenerationClient(GenerationClient):
    def __init__(self, exc: Exception | None = None):
        self.exc = exc or GenerationError("service unavailable")
        self.calls = 0

    async def generate_clarification_questions(self, profile):
        self.calls += 1
        raise self.exc

    async def generate_risk_assessment(self, profile):
        self.calls += 1
        raise self.exc


class BlockingGenerationClient(StaticGenerationClient):
    """Holds every call until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    async def generate_clarification_questions(self, profile):
        self.started.set()
        await self.release.wait()
        return await super().generate_clarification_questions(profile)

    async def generate_risk_assessment(self, profile):
        self.started.set()
        await self.release.wait()
        return await super().generate_risk_assessment(profile)


def fill_personal_info(controller: StageController, age=35, weight=70, height=175) -> None:
    controller.update_personal_info("age", age)
    controller.update_personal_info("weight", weight)
    controller.update_personal_info("height", height)


def to_family_history(controller: StageController) -> None:
    fill_personal_info(controller)
    assert controller.advance()
    assert controller.advance()
    assert controller.stage is Stage.FAMILY_HISTORY


@pytest.fixture
def static_client():
    return StaticGenerationClient()


@pytest.fixture
def failing_client():
    return FailingGenerationClient()

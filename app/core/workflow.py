from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List

from app.api.schemas.profile import (
    ClarificationQuestion,
    FamilyHistory,
    LifestyleFactors,
    PersonalInfo,
    RiskAssessment,
)
from app.core import metrics
from app.core.fallback import FallbackPolicy, generate_with_fallback
from app.core.llm import GenerationClient, GenerationError
from app.core.log import get_logger
from app.core.store import HealthProfileStore


logger = get_logger("workflow")


class Stage(str, Enum):
    PERSONAL_INFO = "personal_info"
    LIFESTYLE = "lifestyle"
    FAMILY_HISTORY = "family_history"
    CLARIFICATION = "clarification"
    RESULTS = "results"


STAGE_ORDER: List[Stage] = list(Stage)
GENERATION_STAGES = {Stage.CLARIFICATION, Stage.RESULTS}
RETREATABLE_STAGES = {Stage.LIFESTYLE, Stage.FAMILY_HISTORY, Stage.CLARIFICATION}


class NoEventLoopError(RuntimeError):
    """A generation stage was entered outside a running asyncio event loop."""


class StageStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"


class GenerationState(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    SUBSTITUTED = "substituted"  # failed, fallback content applied
    DISCARDED = "discarded"  # superseded by retreat or reset


@dataclass
class GenerationTask:
    """One generation call and the single terminal value it delivers."""

    stage: Stage
    epoch: int
    state: GenerationState = GenerationState.PENDING
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.state is not GenerationState.PENDING


class StageController:
    """State machine over the five assessment stages.

    The controller is the only writer of its HealthProfileStore. Entering
    the clarification or results stage starts a generation task on the
    running event loop and leaves the stage ``loading`` until the task
    applies either generated or fallback content.
    """

    def __init__(
        self,
        client: GenerationClient,
        fallback: FallbackPolicy | None = None,
        store: HealthProfileStore | None = None,
    ):
        self.client = client
        self.fallback = fallback or FallbackPolicy()
        self.store = store or HealthProfileStore()
        self.stage = Stage.PERSONAL_INFO
        self.status = StageStatus.READY
        self._epoch = 0
        self._pending: GenerationTask | None = None
        self.generations: Dict[Stage, GenerationTask] = {}

    # ----- gates --------------------------------------------------------------

    def can_proceed_personal_info(self) -> bool:
        info = self.store.personal_info
        return info.age > 0 and info.weight > 0 and info.height > 0

    def can_proceed_clarification(self) -> bool:
        return metrics.can_proceed(self.store.questions, self.store.answer_values())

    def can_advance(self) -> bool:
        if self.status is StageStatus.LOADING:
            return False
        if self.stage is Stage.PERSONAL_INFO:
            return self.can_proceed_personal_info()
        if self.stage is Stage.CLARIFICATION:
            return self.can_proceed_clarification()
        return self.stage is not Stage.RESULTS

    # ----- navigation -------------------------------------------------------

    @property
    def step_number(self) -> int:
        return STAGE_ORDER.index(self.stage) + 1

    @property
    def progress_percent(self) -> float:
        return self.step_number / len(STAGE_ORDER) * 100

    @property
    def pending(self) -> GenerationTask | None:
        return self._pending

    def advance(self) -> bool:
        """Move to the next stage if the current gate passes; otherwise do nothing.

        Entering clarification or results schedules generation on the running
        event loop. Called without one, it raises NoEventLoopError and the
        controller stays where it was.
        """
        if not self.can_advance():
            logger.debug("advance from %s/%s ignored", self.stage.value, self.status.value)
            return False

        if self.stage is Stage.PERSONAL_INFO:
            bmi = self.store.store_bmi()
            self._move_to(Stage.LIFESTYLE)
            logger.info("BMI computed: %s", bmi)
        elif self.stage is Stage.LIFESTYLE:
            self._move_to(Stage.FAMILY_HISTORY)
        elif self.stage is Stage.FAMILY_HISTORY:
            profile = self.store.profile_input()
            self._start_generation(
                Stage.CLARIFICATION,
                lambda: self.client.generate_clarification_questions(profile),
                self.fallback.default_questions,
                self.store.replace_questions,
            )
        elif self.stage is Stage.CLARIFICATION:
            profile = self.store.assessment_input()
            self._start_generation(
                Stage.RESULTS,
                lambda: self.client.generate_risk_assessment(profile),
                self.fallback.default_assessment,
                self.store.replace_assessment,
            )
        return True

    def retreat(self) -> bool:
        """Step back one stage, keeping what was entered. Cancels a pending generation."""
        if self.stage not in RETREATABLE_STAGES:
            return False
        self._discard_pending()
        self._move_to(STAGE_ORDER[STAGE_ORDER.index(self.stage) - 1])
        return True

    def reset(self) -> None:
        """Start over: first stage, every entity back to its default."""
        self._discard_pending()
        self.store = HealthProfileStore()
        self.generations = {}
        self._move_to(Stage.PERSONAL_INFO)

    async def wait_until_ready(self) -> None:
        pending = self._pending
        if pending is not None and pending.task is not None:
            await asyncio.wait({pending.task})

    def _move_to(self, stage: Stage, status: StageStatus = StageStatus.READY) -> None:
        previous = self.stage
        self.stage = stage
        self.status = status
        logger.info("Stage %s -> %s (%s)", previous.value, stage.value, status.value)

    # ----- generation ---------------------------------------------------------

    def _start_generation(
        self,
        stage: Stage,
        call: Callable[[], Awaitable[Any]],
        fallback: Callable[[], Any],
        apply: Callable[[Any], None],
    ) -> GenerationTask:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise NoEventLoopError(f"entering {stage.value} needs a running event loop") from exc
        self._epoch += 1
        generation = GenerationTask(stage=stage, epoch=self._epoch)
        self._pending = generation
        self.generations[stage] = generation
        self._move_to(stage, StageStatus.LOADING)
        generation.task = loop.create_task(self._run_generation(generation, call, fallback, apply))
        return generation

    async def _run_generation(
        self,
        generation: GenerationTask,
        call: Callable[[], Awaitable[Any]],
        fallback: Callable[[], Any],
        apply: Callable[[Any], None],
    ) -> None:
        label = "clarification questions" if generation.stage is Stage.CLARIFICATION else "risk assessment"

        async def attempt() -> Any:
            try:
                return await call()
            except GenerationError:
                raise
            except Exception as exc:  # noqa: BLE001
                raise GenerationError(f"unexpected error: {exc!r}") from exc

        value, used_fallback = await generate_with_fallback(attempt, fallback, label)

        if generation.epoch != self._epoch or generation.state is GenerationState.DISCARDED:
            generation.state = GenerationState.DISCARDED
            logger.info("Discarding stale %s result", label)
            return

        apply(value)
        generation.state = GenerationState.SUBSTITUTED if used_fallback else GenerationState.SUCCEEDED
        self._pending = None
        self.status = StageStatus.READY
        logger.info("Stage %s ready (%s)", generation.stage.value, generation.state.value)

    def _discard_pending(self) -> None:
        pending = self._pending
        if pending is None:
            return
        self._epoch += 1
        pending.state = GenerationState.DISCARDED
        if pending.task is not None and not pending.task.done():
            pending.task.cancel()
        self._pending = None
        logger.info("Cancelled pending %s generation", pending.stage.value)

    # ----- field updates ----------------------------------------------------

    def update_personal_info(self, field_name: str, value: Any) -> PersonalInfo:
        return self.store.update_personal_info(field_name, value)

    def update_lifestyle(self, field_name: str, value: Any) -> LifestyleFactors:
        return self.store.update_lifestyle(field_name, value)

    def toggle_dietary_preference(self, preference: str) -> LifestyleFactors:
        return self.store.toggle_dietary_preference(preference)

    def update_family_history(self, field_name: str, value: Any) -> FamilyHistory:
        return self.store.update_family_history(field_name, value)

    def answer_question(self, question_id: str, value: Any) -> Any:
        return self.store.set_answer(question_id, value)

    def clear_answer(self, question_id: str) -> None:
        self.store.clear_answer(question_id)

    # ----- read side ----------------------------------------------------------

    @property
    def questions(self) -> List[ClarificationQuestion]:
        return list(self.store.questions)

    @property
    def assessment(self) -> RiskAssessment | None:
        return self.store.assessment

    def state(self) -> Dict[str, Any]:
        """Everything the presentation layer needs to render the current stage."""
        answered, required = metrics.required_progress(self.store.questions, self.store.answer_values())
        assessment = self.store.assessment
        return {
            "stage": self.stage.value,
            "status": self.status.value,
            "step": self.step_number,
            "total_steps": len(STAGE_ORDER),
            "progress_percent": self.progress_percent,
            "can_advance": self.can_advance(),
            "can_proceed_personal_info": self.can_proceed_personal_info(),
            "can_proceed_clarification": self.can_proceed_clarification(),
            "required_answered": answered,
            "required_total": required,
            "family_condition_count": metrics.family_condition_count(self.store.family_history),
            "used_fallback": {
                stage.value: generation.state is GenerationState.SUBSTITUTED
                for stage, generation in self.generations.items()
            },
            "derived": metrics.summarize(
                self.store.personal_info.bmi,
                assessment.overall_risk_score if assessment else None,
            ),
            "profile": self.store.snapshot(),
        }

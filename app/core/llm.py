from __future__ import annotations

from abc import ABC, abstractmethod
from json import JSONDecodeError
from json import loads as json_loads
from typing import Any, Dict, List

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from app.api.schemas.profile import (
    AssessmentInput,
    ClarificationBatch,
    ClarificationQuestion,
    ProfileInput,
    RiskAssessment,
)
from app.core.config import Settings, get_settings
from app.core.log import get_logger


logger = get_logger("llm")


class GenerationError(Exception):
    """The generation service could not produce a usable result.

    Network failures, timeouts, malformed responses and server errors are
    all reported as this one kind.
    """


class GenerationClient(ABC):
    """Produces clarification questions and risk assessments from a profile."""

    @abstractmethod
    async def generate_clarification_questions(self, profile: ProfileInput) -> List[ClarificationQuestion]:
        ...

    @abstractmethod
    async def generate_risk_assessment(self, profile: AssessmentInput) -> RiskAssessment:
        ...


class DisabledGenerationClient(GenerationClient):
    """Always fails, so every stage is served from fallback content."""

    async def generate_clarification_questions(self, profile: ProfileInput) -> List[ClarificationQuestion]:
        raise GenerationError("generation service disabled")

    async def generate_risk_assessment(self, profile: AssessmentInput) -> RiskAssessment:
        raise GenerationError("generation service disabled")


def _profile_json(profile: ProfileInput) -> str:
    return profile.model_dump_json(by_alias=True, indent=2)


def _build_questions_prompt() -> str:
    return (
        "You are a preventive-health assistant preparing a disease risk assessment.\n"
        "You receive a user's personal info, lifestyle factors and family history as JSON.\n\n"
        "GOAL — Ask 3 to 6 short follow-up questions that would most sharpen a risk estimate "
        "for THIS user. Do not repeat anything the profile already answers.\n\n"
        "FORMAT — Respond with a JSON object: {\"questions\": [...]}. Each question has:\n"
        "- id: unique string (\"1\", \"2\", ...)\n"
        "- question: the question text\n"
        "- type: one of select, boolean, slider, text\n"
        "- options: list of strings (select only)\n"
        "- min, max, unit: numeric bounds and unit label (slider only)\n"
        "- required: true or false\n\n"
        "STYLE — Plain language, one topic per question, no diagnoses."
    )


def _build_assessment_prompt() -> str:
    return (
        "You are a preventive-health assistant producing a disease risk assessment.\n"
        "You receive a user's personal info, lifestyle factors, family history and their answers "
        "to clarification questions as JSON.\n\n"
        "GOAL — Estimate the user's risk for the conditions most relevant to their profile.\n"
        "Never fabricate measurements the user did not provide.\n\n"
        "FORMAT — Respond with a JSON object with keys:\n"
        "- overallRiskScore: integer 0-100\n"
        "- riskFactors: list of {condition, riskPercentage (0-100), severity (low|moderate|high), "
        "explanation, preventionTips (list of strings)}\n"
        "- recommendations: {lifestyle: [...], medical: [...], monitoring: [...]}\n"
        "- confidenceScore: integer 0-100\n\n"
        "STYLE — Supportive and concise. This is not a diagnosis."
    )


def _parse_json_object(content: str | None) -> Dict[str, Any]:
    try:
        data = json_loads(content or "")
    except JSONDecodeError as exc:
        raise GenerationError(f"response is not valid JSON: {exc}") from exc
    if isinstance(data, list):
        # some models return the bare question list
        data = {"questions": data}
    if not isinstance(data, dict):
        raise GenerationError("response is not a JSON object")
    return data


def parse_questions(content: str | None) -> List[ClarificationQuestion]:
    data = _parse_json_object(content)
    try:
        batch = ClarificationBatch.model_validate(data)
    except ValidationError as exc:
        raise GenerationError(f"malformed clarification questions: {exc}") from exc
    if not batch.questions:
        raise GenerationError("no clarification questions returned")
    return batch.questions


def parse_assessment(content: str | None) -> RiskAssessment:
    data = _parse_json_object(content)
    try:
        return RiskAssessment.model_validate(data)
    except ValidationError as exc:
        raise GenerationError(f"malformed risk assessment: {exc}") from exc


class OpenAIGenerationClient(GenerationClient):
    """Generation backed by OpenAI chat completions in JSON mode.

    One attempt per call: the SDK's own retries are switched off so a
    failure reaches the fallback path within the configured timeout.
    With ``use_langchain`` the request goes through LangChain structured
    output instead.
    """

    def __init__(self, settings: Settings | None = None, client: AsyncOpenAI | None = None):
        self.settings = settings or get_settings()
        self._client = client

    def _get_openai_client(self) -> AsyncOpenAI:
        if self._client is None:
            try:
                self._client = AsyncOpenAI(
                    api_key=self.settings.openai_api_key,
                    timeout=self.settings.generation_timeout_seconds,
                    max_retries=0,
                )
            except OpenAIError as exc:
                raise GenerationError(f"OpenAI client unavailable: {exc}") from exc
        return self._client

    async def _complete_json(self, system: str, user_content: str) -> str | None:
        client = self._get_openai_client()
        try:
            response = await client.chat.completions.create(
                model=self.settings.openai_model,
                temperature=self.settings.openai_temperature,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user_content},
                ],
            )
        except OpenAIError as exc:
            raise GenerationError(f"OpenAI request failed: {exc}") from exc
        try:
            return response.choices[0].message.content
        except (IndexError, AttributeError) as exc:
            raise GenerationError("OpenAI response had no choices") from exc

    async def _structured(self, system: str, user_content: str, schema: type) -> Any:
        # Delayed imports so the plain OpenAI path does not pay for LangChain
        from langchain_core.prompts import ChatPromptTemplate  # type: ignore
        from langchain_openai import ChatOpenAI  # type: ignore

        prompt = ChatPromptTemplate.from_messages(
            [
                ("system", "{system}"),
                ("user", "{input}"),
            ]
        )
        llm = ChatOpenAI(
            model=self.settings.openai_model,
            temperature=self.settings.openai_temperature,
            api_key=self.settings.openai_api_key,
            timeout=self.settings.generation_timeout_seconds,
            max_retries=0,
        )
        chain = prompt | llm.with_structured_output(schema)
        try:
            result = await chain.ainvoke({"system": system, "input": user_content})
        except Exception as exc:  # noqa: BLE001
            raise GenerationError(f"LangChain structured output failed: {exc}") from exc
        if result is None:
            raise GenerationError("LangChain structured output returned nothing")
        return result

    async def generate_clarification_questions(self, profile: ProfileInput) -> List[ClarificationQuestion]:
        system = _build_questions_prompt()
        if self.settings.use_langchain:
            batch = await self._structured(system, _profile_json(profile), ClarificationBatch)
            if not batch.questions:
                raise GenerationError("no clarification questions returned")
            return batch.questions
        content = await self._complete_json(system, _profile_json(profile))
        questions = parse_questions(content)
        logger.info("Generated %d clarification questions", len(questions))
        return questions

    async def generate_risk_assessment(self, profile: AssessmentInput) -> RiskAssessment:
        system = _build_assessment_prompt()
        if self.settings.use_langchain:
            return await self._structured(system, _profile_json(profile), RiskAssessment)
        content = await self._complete_json(system, _profile_json(profile))
        assessment = parse_assessment(content)
        logger.info("Generated risk assessment (score=%d)", assessment.overall_risk_score)
        return assessment


def build_generation_client(settings: Settings | None = None) -> GenerationClient:
    settings = settings or get_settings()
    if settings.use_fallback_only:
        logger.info("Generation disabled; all stages will use fallback content")
        return DisabledGenerationClient()
    return OpenAIGenerationClient(settings)

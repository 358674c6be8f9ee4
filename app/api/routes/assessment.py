from fastapi import APIRouter, Depends, HTTPException, status

from ..schemas.assessment import (
    AnswerRequest,
    FieldUpdate,
    NavigationResponse,
    PreferenceToggle,
    SessionState,
)
from ...core.session import AssessmentSession, SessionRegistry, get_registry
from ...core.store import InvalidAnswerError, ProfileValidationError


router = APIRouter(tags=["assessment"])


def _get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> AssessmentSession:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown session {session_id}")
    return session


def _state(session: AssessmentSession) -> SessionState:
    return SessionState(session_id=session.session_id, **session.controller.state())


def _reject(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=422, detail=str(exc))


@router.post("/sessions", response_model=SessionState, status_code=201, summary="Start an assessment")
def create_session(registry: SessionRegistry = Depends(get_registry)) -> SessionState:
    return _state(registry.create())


@router.get("/sessions/{session_id}", response_model=SessionState, summary="Current stage and profile")
def get_session(session: AssessmentSession = Depends(_get_session)) -> SessionState:
    return _state(session)


@router.delete("/sessions/{session_id}", status_code=204, summary="Discard an assessment")
def delete_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> None:
    if not registry.delete(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown session {session_id}")


@router.patch("/sessions/{session_id}/personal-info", response_model=SessionState)
def update_personal_info(payload: FieldUpdate, session: AssessmentSession = Depends(_get_session)) -> SessionState:
    try:
        session.controller.update_personal_info(payload.field, payload.value)
    except ProfileValidationError as exc:
        raise _reject(exc) from exc
    return _state(session)


@router.patch("/sessions/{session_id}/lifestyle", response_model=SessionState)
def update_lifestyle(payload: FieldUpdate, session: AssessmentSession = Depends(_get_session)) -> SessionState:
    try:
        session.controller.update_lifestyle(payload.field, payload.value)
    except ProfileValidationError as exc:
        raise _reject(exc) from exc
    return _state(session)


@router.post("/sessions/{session_id}/dietary-preferences/toggle", response_model=SessionState)
def toggle_dietary_preference(
    payload: PreferenceToggle, session: AssessmentSession = Depends(_get_session)
) -> SessionState:
    try:
        session.controller.toggle_dietary_preference(payload.value)
    except ProfileValidationError as exc:
        raise _reject(exc) from exc
    return _state(session)


@router.patch("/sessions/{session_id}/family-history", response_model=SessionState)
def update_family_history(payload: FieldUpdate, session: AssessmentSession = Depends(_get_session)) -> SessionState:
    try:
        session.controller.update_family_history(payload.field, payload.value)
    except ProfileValidationError as exc:
        raise _reject(exc) from exc
    return _state(session)


@router.put("/sessions/{session_id}/answers/{question_id}", response_model=SessionState)
def answer_question(
    question_id: str, payload: AnswerRequest, session: AssessmentSession = Depends(_get_session)
) -> SessionState:
    try:
        session.controller.answer_question(question_id, payload.value)
    except InvalidAnswerError as exc:
        raise _reject(exc) from exc
    return _state(session)


@router.delete("/sessions/{session_id}/answers/{question_id}", response_model=SessionState)
def clear_answer(question_id: str, session: AssessmentSession = Depends(_get_session)) -> SessionState:
    session.controller.clear_answer(question_id)
    return _state(session)


# Navigation handlers are async: entering a generation stage schedules a task on the running loop.

@router.post("/sessions/{session_id}/advance", response_model=NavigationResponse, summary="Next stage")
async def advance(session: AssessmentSession = Depends(_get_session)) -> NavigationResponse:
    moved = session.controller.advance()
    return NavigationResponse(moved=moved, state=_state(session))


@router.post("/sessions/{session_id}/retreat", response_model=NavigationResponse, summary="Previous stage")
async def retreat(session: AssessmentSession = Depends(_get_session)) -> NavigationResponse:
    moved = session.controller.retreat()
    return NavigationResponse(moved=moved, state=_state(session))


@router.post("/sessions/{session_id}/reset", response_model=NavigationResponse, summary="Start over")
async def reset(session: AssessmentSession = Depends(_get_session)) -> NavigationResponse:
    session.controller.reset()
    return NavigationResponse(moved=True, state=_state(session))

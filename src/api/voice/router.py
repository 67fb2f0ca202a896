import logging
from datetime import timedelta
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, Response, UploadFile, status

from .services import VoiceServices, get_voice_services
from src.services.synthesizer import resolve_voice_profile
from src.shared.constants import DEFAULT_DETECTION_LANGUAGES
from src.shared.exceptions import (
    EmptyTranscriptError,
    SessionNotFoundError,
    SessionTerminalError,
    StorageError,
    SynthesisError,
    TranscriptionError,
    TurnTimeoutError,
    VoiceAssistantError,
)
from src.shared.schemas import (
    EndSessionRequest,
    EndSessionResponse,
    ProductRecommendations,
    RecommendationRequest,
    SessionRequest,
    SessionStatusResponse,
    StartSessionRequest,
    StartSessionResponse,
    SweepRequest,
    SweepResponse,
    SynthesizeRequest,
    TurnOutcome,
    UpdateContextRequest,
    VoiceSession,
)

router = APIRouter()
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    SessionNotFoundError: status.HTTP_404_NOT_FOUND,
    SessionTerminalError: status.HTTP_409_CONFLICT,
    EmptyTranscriptError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    TranscriptionError: status.HTTP_502_BAD_GATEWAY,
    SynthesisError: status.HTTP_502_BAD_GATEWAY,
    TurnTimeoutError: status.HTTP_504_GATEWAY_TIMEOUT,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _raise_http_error(e: VoiceAssistantError) -> NoReturn:
    status_code = ERROR_STATUS_CODES.get(type(e), status.HTTP_500_INTERNAL_SERVER_ERROR)
    raise HTTPException(
        status_code=status_code,
        detail={"error": type(e).__name__, "message": str(e)},
    ) from e


@router.post("/start-session", response_model=StartSessionResponse)
async def start_session(
    start_request: StartSessionRequest,
    request: Request,
    services: VoiceServices = Depends(get_voice_services),
):
    """
    Creates a new voice session for a shopper (guest sessions allowed).
    """
    forwarded_for = request.headers.get("x-forwarded-for")
    client_meta = {
        "userAgent": request.headers.get("user-agent"),
        "ipAddress": forwarded_for.split(",")[0].strip() if forwarded_for else None,
    }
    try:
        session = await services.lifecycle.create(
            customer_id=start_request.customerId,
            language=start_request.language,
            device_type=start_request.deviceType,
            client_meta=client_meta,
            customer_name=start_request.customerName,
        )
    except VoiceAssistantError as e:
        logger.error(f"Failed to start voice session: {e}")
        _raise_http_error(e)

    return StartSessionResponse(
        sessionId=session.sessionId,
        language=session.language,
        customerId=session.customerId,
        customerName=session.context.customerName,
    )


@router.post("/process-turn", response_model=TurnOutcome)
async def process_turn(
    sessionId: str = Form(..., min_length=4),
    audio: UploadFile = File(...),
    languageHint: Optional[str] = Form(None),
    encoding: Optional[str] = Form(None),
    detectLanguage: bool = Form(False),
    alternativeLanguages: Optional[str] = Form(None),
    services: VoiceServices = Depends(get_voice_services),
):
    """
    Transcribes one spoken utterance, answers it and records both sides of
    the turn. Speech for the reply is requested separately via /synthesize.

    When `alternativeLanguages` (comma separated) is given, or
    `detectLanguage` is set, the spoken language is picked from those
    candidates (or a default list) and the reply follows it.
    """
    logger.debug(f"Process turn triggered for session_id: {sessionId}")
    audio_bytes = await audio.read()
    if not audio_bytes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing audio")

    alternative_languages = None
    if alternativeLanguages:
        alternative_languages = [code.strip() for code in alternativeLanguages.split(",") if code.strip()]
    elif detectLanguage:
        alternative_languages = list(DEFAULT_DETECTION_LANGUAGES)

    try:
        return await services.orchestrator.process_turn(
            sessionId,
            audio_bytes,
            language_hint=languageHint,
            encoding=encoding,
            alternative_languages=alternative_languages,
        )
    except VoiceAssistantError as e:
        logger.warning(f"Turn for session {sessionId} failed: {e}")
        _raise_http_error(e)
    except Exception as e:
        logger.error(f"An unexpected error occurred processing a turn: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred. Check server logs.",
        )


@router.post("/end-session", response_model=EndSessionResponse)
async def end_session(
    end_request: EndSessionRequest,
    services: VoiceServices = Depends(get_voice_services),
):
    try:
        summary = await services.lifecycle.end(
            end_request.sessionId, satisfaction_score=end_request.satisfactionScore
        )
    except VoiceAssistantError as e:
        _raise_http_error(e)

    return EndSessionResponse(summary=summary.conversationSummary, analytics=summary)


@router.post("/pause-session", response_model=SessionStatusResponse)
async def pause_session(
    session_request: SessionRequest,
    services: VoiceServices = Depends(get_voice_services),
):
    try:
        changed = await services.lifecycle.pause(session_request.sessionId)
        session = await services.lifecycle.get(session_request.sessionId)
    except VoiceAssistantError as e:
        _raise_http_error(e)
    return SessionStatusResponse(sessionId=session.sessionId, status=session.status, changed=changed)


@router.post("/resume-session", response_model=SessionStatusResponse)
async def resume_session(
    session_request: SessionRequest,
    services: VoiceServices = Depends(get_voice_services),
):
    try:
        changed = await services.lifecycle.resume(session_request.sessionId)
        session = await services.lifecycle.get(session_request.sessionId)
    except VoiceAssistantError as e:
        _raise_http_error(e)
    return SessionStatusResponse(sessionId=session.sessionId, status=session.status, changed=changed)


@router.get("/sessions/active", response_model=List[VoiceSession])
async def list_active_sessions(services: VoiceServices = Depends(get_voice_services)):
    try:
        return await services.lifecycle.list_active_sessions()
    except VoiceAssistantError as e:
        _raise_http_error(e)


@router.get("/sessions/{session_id}", response_model=VoiceSession)
async def get_session(session_id: str, services: VoiceServices = Depends(get_voice_services)):
    try:
        return await services.lifecycle.get(session_id)
    except VoiceAssistantError as e:
        _raise_http_error(e)


@router.post("/sessions/{session_id}/context", response_model=VoiceSession)
async def update_session_context(
    session_id: str,
    context_request: UpdateContextRequest,
    services: VoiceServices = Depends(get_voice_services),
):
    updates = context_request.model_dump(exclude_unset=True)
    try:
        return await services.lifecycle.update_context(session_id, updates)
    except VoiceAssistantError as e:
        _raise_http_error(e)


@router.get("/customers/{customer_id}/sessions", response_model=List[VoiceSession])
async def list_customer_sessions(
    customer_id: str, services: VoiceServices = Depends(get_voice_services)
):
    try:
        return await services.lifecycle.list_customer_sessions(customer_id)
    except VoiceAssistantError as e:
        _raise_http_error(e)


@router.post("/sweep-abandoned", response_model=SweepResponse)
async def sweep_abandoned(
    sweep_request: SweepRequest,
    services: VoiceServices = Depends(get_voice_services),
):
    """
    Marks long-idle active sessions as abandoned. Intended to be called by
    an external scheduler.
    """
    try:
        count = await services.lifecycle.sweep_abandoned(timedelta(seconds=sweep_request.idleSeconds))
    except VoiceAssistantError as e:
        _raise_http_error(e)
    return SweepResponse(abandoned=count)


@router.post("/synthesize")
async def synthesize(
    synthesize_request: SynthesizeRequest,
    services: VoiceServices = Depends(get_voice_services),
):
    profile = resolve_voice_profile(
        synthesize_request.voiceProfile,
        synthesize_request.languageCode,
        default=services.default_voice_profile,
    )
    try:
        result = await services.synthesizer.synthesize(synthesize_request.text, profile)
    except VoiceAssistantError as e:
        logger.error(f"Error synthesizing speech: {e}")
        _raise_http_error(e)

    return Response(
        content=result.audio,
        media_type=result.mimeType,
        headers={"Cache-Control": "public, max-age=3600"},
    )


@router.post("/recommendations", response_model=ProductRecommendations)
async def recommend_products(
    recommendation_request: RecommendationRequest,
    services: VoiceServices = Depends(get_voice_services),
):
    """
    Suggests product types or categories for a shopper profile. Answers with
    an empty list when the model cannot produce recommendations.
    """
    return await services.assistant.recommend(
        recommendation_request,
        max_recommendations=recommendation_request.maxRecommendations,
    )

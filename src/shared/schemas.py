from datetime import datetime, timezone

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from src.shared.constants import (
    DEFAULT_IDLE_THRESHOLD_SECONDS,
    DEFAULT_LANGUAGE,
    SATISFACTION_SCORE_MAX,
    SATISFACTION_SCORE_MIN,
    SYNTHESIS_TEXT_MAX_LENGTH,
)
from src.shared.enums import ActionType, DeviceType, Intent, InteractionType
from src.shared.state import SessionStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthResponse(BaseModel):
    status: str
    db_connection: str


# --------- Session entity ---------

class ConversationMessage(BaseModel):
    role: InteractionType
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    intent: Optional[Intent] = None


class ProductContext(BaseModel):
    id: str
    title: str
    price: str
    available: bool = True
    tags: Optional[List[str]] = None


class CartContext(BaseModel):
    productId: str
    productTitle: str
    quantity: int
    price: str


class AssistantContext(BaseModel):
    customerId: Optional[str] = None
    customerName: Optional[str] = None
    language: Optional[str] = None
    currentProducts: List[ProductContext] = Field(default_factory=list)
    cartItems: List[CartContext] = Field(default_factory=list)
    funnelStage: Optional[str] = None
    userPreferences: Dict[str, Any] = Field(default_factory=dict)


class ConversationSummary(BaseModel):
    summary: str
    keyTopics: List[str] = Field(default_factory=list)
    outcome: str = "Unknown"


class SessionMetadata(BaseModel):
    deviceType: DeviceType = DeviceType.WEB
    userAgent: Optional[str] = None
    ipAddress: Optional[str] = None
    totalMessages: int = 0
    totalDuration: Optional[int] = None
    conversationSummary: Optional[ConversationSummary] = None


class SessionAnalytics(BaseModel):
    intents: Dict[str, int] = Field(default_factory=dict)
    productsDiscussed: List[str] = Field(default_factory=list)
    conversionsAttempted: int = 0
    satisfactionScore: Optional[int] = Field(
        default=None, ge=SATISFACTION_SCORE_MIN, le=SATISFACTION_SCORE_MAX
    )


class VoiceSession(BaseModel):
    """
    A single voice conversation, persisted as one record keyed by `sessionId`.
    """

    sessionId: str
    customerId: Optional[str] = None
    startTime: datetime = Field(default_factory=utcnow)
    endTime: Optional[datetime] = None
    status: SessionStatus = SessionStatus.ACTIVE
    language: str = DEFAULT_LANGUAGE
    conversationHistory: List[ConversationMessage] = Field(default_factory=list)
    context: AssistantContext = Field(default_factory=AssistantContext)
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)
    analytics: SessionAnalytics = Field(default_factory=SessionAnalytics)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


# --------- Turn processing ---------

class SuggestedAction(BaseModel):
    """
    A side effect implied by the assistant's reply. `type` is kept as a plain
    string so that tags unknown to this deployment still parse.
    """

    type: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def of(cls, action_type: ActionType, **data: Any) -> "SuggestedAction":
        return cls(type=action_type.value, data=data)


class Transcription(BaseModel):
    transcript: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    languageCode: Optional[str] = None


class AssistantReply(BaseModel):
    text: str
    intent: Intent
    actions: List[SuggestedAction] = Field(default_factory=list)
    tokensUsed: int = 0


class TurnOutcome(BaseModel):
    sessionId: str
    transcript: str
    confidence: float
    languageCode: Optional[str] = None
    reply: str
    intent: Intent
    actions: List[SuggestedAction] = Field(default_factory=list)
    tokensUsed: int = 0


class SessionSummary(BaseModel):
    sessionId: str
    status: SessionStatus
    startTime: datetime
    endTime: Optional[datetime] = None
    totalMessages: int
    totalDuration: Optional[int] = None
    conversationSummary: Optional[ConversationSummary] = None
    analytics: SessionAnalytics

    @classmethod
    def from_session(cls, session: VoiceSession) -> "SessionSummary":
        return cls(
            sessionId=session.sessionId,
            status=session.status,
            startTime=session.startTime,
            endTime=session.endTime,
            totalMessages=session.metadata.totalMessages,
            totalDuration=session.metadata.totalDuration,
            conversationSummary=session.metadata.conversationSummary,
            analytics=session.analytics,
        )


class CustomerPreferences(BaseModel):
    style: Optional[str] = None
    priceRange: Optional[str] = None
    previousPurchases: List[str] = Field(default_factory=list)
    browsingHistory: List[str] = Field(default_factory=list)


class ProductRecommendations(BaseModel):
    recommendations: List[str] = Field(default_factory=list)
    reasoning: str = ""


class CustomerCart(BaseModel):
    customerName: Optional[str] = None
    cartItems: List[CartContext] = Field(default_factory=list)


class SynthesisResult(BaseModel):
    audio: bytes
    mimeType: str = "audio/wav"


# --------- HTTP surface ---------

class StartSessionRequest(BaseModel):
    language: str = DEFAULT_LANGUAGE
    deviceType: DeviceType = DeviceType.WEB
    customerId: Optional[str] = None
    customerName: Optional[str] = None


class StartSessionResponse(BaseModel):
    sessionId: str
    language: str
    customerId: Optional[str] = None
    customerName: Optional[str] = None


class SessionRequest(BaseModel):
    sessionId: str = Field(..., min_length=4)


class SessionStatusResponse(BaseModel):
    sessionId: str
    status: SessionStatus
    changed: bool


class EndSessionRequest(SessionRequest):
    satisfactionScore: Optional[int] = Field(
        default=None, ge=SATISFACTION_SCORE_MIN, le=SATISFACTION_SCORE_MAX
    )


class EndSessionResponse(BaseModel):
    summary: Optional[ConversationSummary] = None
    analytics: SessionSummary


class UpdateContextRequest(BaseModel):
    funnelStage: Optional[str] = None
    currentProducts: Optional[List[ProductContext]] = None
    cartItems: Optional[List[CartContext]] = None
    userPreferences: Optional[Dict[str, Any]] = None


class SweepRequest(BaseModel):
    idleSeconds: int = Field(default=DEFAULT_IDLE_THRESHOLD_SECONDS, gt=0)


class SweepResponse(BaseModel):
    abandoned: int


class SynthesizeRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=SYNTHESIS_TEXT_MAX_LENGTH)
    voiceProfile: Optional[str] = None
    languageCode: Optional[str] = None


class RecommendationRequest(CustomerPreferences):
    maxRecommendations: int = Field(default=5, ge=1, le=10)

"""Request/response bodies for the HTTP routes, validated before anything reaches the driver."""
from typing import Literal, Optional

from pydantic import BaseModel, Field

ChatStatus = Literal["success", "retry", "section_completed", "done", "error"]
GenerateStep = Literal["information", "hazard", "response", "final"]


class ChatRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=255)
    message: str = ""


class ChatResponse(BaseModel):
    response: str
    session_id: str
    status: ChatStatus
    section: Optional[str] = None


class ProposalCreateRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = None


class SectionOut(BaseModel):
    completed: bool
    lastRuleIndexAsked: int
    generatedText: Optional[str] = None
    responses: list[str] = []


class ReviewStateOut(BaseModel):
    completed: bool
    finalDocument: Optional[str] = None


class ProposalOut(BaseModel):
    """Proposal document as the web client reads it."""
    sessionId: str
    email: Optional[str] = None
    sections: dict[str, SectionOut]
    reviewState: ReviewStateOut
    createdAt: Optional[str] = None
    lastUpdated: Optional[str] = None
    version: int


class GenerateRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=255)
    step: GenerateStep


class GenerateResponse(BaseModel):
    generatedText: str
    step: str
    status: Literal["success", "fallback"]


class RulesSeedResponse(BaseModel):
    success: bool
    message: str


class Credentials(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=1024)


class AuthResponse(BaseModel):
    success: bool


class MeResponse(BaseModel):
    email: str
    user_id: str


class AnalysisRequest(BaseModel):
    rule: str = Field(..., min_length=1)
    answer: str = ""


class AnalysisResponse(BaseModel):
    type: Literal["conversation", "validation"]
    message: str
    valid: Optional[bool] = None


class ComponentStatus(BaseModel):
    status: Literal["ok", "error", "unknown"]
    message: str


class ConnectResponse(BaseModel):
    status: Literal["healthy", "degraded"]
    components: dict[str, ComponentStatus]
    timestamp: str

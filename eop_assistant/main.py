import json
import logging
from functools import lru_cache
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Body, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eop_assistant.config import BACKEND_BASE_URL, CORS_ORIGINS, ENV, JWT_EXPIRES_DAYS
from eop_assistant.conversation.config import load_conversation_config
from eop_assistant.conversation.driver import ConversationDriver, publish_snapshot
from eop_assistant.conversation.errors import ProposalConflictError, record_turn_error
from eop_assistant.conversation.store import get_or_create_proposal, get_proposal
from eop_assistant.database import get_db, engine, AsyncSessionLocal
from eop_assistant.schemas import (
    AnalysisRequest,
    AnalysisResponse,
    AuthResponse,
    ChatRequest,
    ChatResponse,
    ConnectResponse,
    Credentials,
    GenerateRequest,
    GenerateResponse,
    MeResponse,
    ProposalCreateRequest,
    ProposalOut,
    RulesSeedResponse,
)
from eop_assistant.services import auth
from eop_assistant.services.analysis import analyze_answer
from eop_assistant.services.backend_health import check_backend
from eop_assistant.services.backend_proxy import forward
from eop_assistant.services.broadcast import ProposalBroadcaster, Subscription
from eop_assistant.services.llm_provider import LLMProvider, get_llm_provider_or_unavailable
from eop_assistant.services.prompt_registry import missing_prompts
from eop_assistant.services.proposal_cache import ProposalCache
from eop_assistant.services.proposal_generator import (
    ProposalNotFoundError,
    SectionNotReadyError,
    UnknownStepError,
    generate_section_text,
)
from eop_assistant.services.rules_bank import RuleCatalogCache, seed_rules_bank

conversation_config = load_conversation_config()

# Set up logging
logging.basicConfig(level=conversation_config.log_level, format=conversation_config.log_format)
logger = logging.getLogger(__name__)
# Set specific loggers to appropriate levels
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)  # Reduce SQLAlchemy verbosity
logging.getLogger('uvicorn').setLevel(logging.INFO)
logging.getLogger('httpx').setLevel(logging.WARNING)

CONFLICT_MESSAGE = (
    "⚠️ Your last message crossed with another update to this conversation. "
    "Please send it again."
)
INTERNAL_ERROR_MESSAGE = (
    "⚠️ Something went wrong on our side while processing your answer. "
    "Please try again in a moment."
)

app = FastAPI(title="EOP Assistant", version="0.1.0")

# Shared per-process components; handlers reach them through request.app.state
app.state.config = conversation_config
app.state.catalog_cache = RuleCatalogCache()
app.state.proposal_cache = ProposalCache(ttl_seconds=conversation_config.proposal_cache_ttl_seconds)
app.state.broadcaster = ProposalBroadcaster(queue_size=conversation_config.stream_queue_size)


def check_prompt_templates(version: str) -> None:
    """Fail fast when the configured prompt version lacks a template the app renders."""
    missing = missing_prompts(version)
    if missing:
        raise RuntimeError(f"Prompt version {version!r} is missing templates: {', '.join(missing)}")


@app.on_event("startup")
async def verify_prompt_templates():
    check_prompt_templates(app.state.config.prompt_version)
    logger.info("Startup: prompt templates %s present", app.state.config.prompt_version)


@app.on_event("startup")
async def create_tables_and_seed_rules():
    """Ensure tables exist and the rules bank is seeded before serving."""
    from eop_assistant.init_db import create_tables

    await create_tables(engine)
    async with AsyncSessionLocal() as db:
        try:
            created = await seed_rules_bank(db)
            logger.info("Startup: rules bank %s", "created" if created else "already present")
        except SQLAlchemyError as e:
            logger.error("Startup: could not seed rules bank: %s", e, exc_info=True)


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def _default_llm() -> LLMProvider:
    return get_llm_provider_or_unavailable()


def get_llm() -> LLMProvider:
    """LLM dependency (overridden in tests)."""
    return _default_llm()


@app.get("/health")
def health_check():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

@app.post("/chat", response_model=ChatResponse)
async def chat(
    request: Request,
    body: ChatRequest = Body(...),
    db: AsyncSession = Depends(get_db),
    llm: LLMProvider = Depends(get_llm),
):
    """Handle one chat turn: ask, validate, or advance the session's questionnaire."""
    session_id = body.session_id.strip()
    if not session_id:
        raise HTTPException(status_code=400, detail="session_id is required")

    state = request.app.state
    driver = ConversationDriver(
        db,
        llm,
        state.catalog_cache,
        state.config,
        proposal_cache=state.proposal_cache,
        broadcaster=state.broadcaster,
    )
    try:
        reply = await driver.handle_message(session_id, body.message)
    except ProposalConflictError as e:
        await record_turn_error(db, session_id, e)
        return JSONResponse(
            status_code=409,
            content=ChatResponse(response=CONFLICT_MESSAGE, session_id=session_id, status="error").model_dump(),
        )
    except Exception as e:
        logger.error("Chat turn failed for session %s: %s", session_id, e, exc_info=True)
        await record_turn_error(db, session_id, e)
        return JSONResponse(
            status_code=500,
            content=ChatResponse(response=INTERNAL_ERROR_MESSAGE, session_id=session_id, status="error").model_dump(),
        )

    return ChatResponse(response=reply.text, session_id=session_id, status=reply.status, section=reply.section)


@app.post("/analysis", response_model=AnalysisResponse)
async def analysis(
    request: Request,
    body: AnalysisRequest = Body(...),
    llm: LLMProvider = Depends(get_llm),
):
    """Check one answer against one rule without touching any session."""
    config = request.app.state.config
    result = await analyze_answer(
        llm,
        body.rule,
        body.answer,
        timeout=config.llm_timeout_seconds,
        prompt_version=config.prompt_version,
    )
    return AnalysisResponse(type=result.type, message=result.message, valid=result.valid)


# ---------------------------------------------------------------------------
# Proposal
# ---------------------------------------------------------------------------

async def _proposal_event_stream(
    request: Request,
    subscription: Subscription,
    initial: Optional[dict],
    keepalive_seconds: float,
):
    """SSE lines: the current snapshot (if any), then one event per update, keepalive comments while idle."""
    async with subscription:
        if initial is not None:
            event = {"event": "proposal_snapshot", "sessionId": initial.get("sessionId"), "data": initial}
            yield f"data: {json.dumps(event, default=str)}\n\n"
        while True:
            if await request.is_disconnected():
                break
            event = await subscription.next_event(timeout=keepalive_seconds)
            if event is None:
                yield ": keepalive\n\n"
                continue
            yield f"data: {json.dumps(event, default=str)}\n\n"


async def _load_snapshot(request: Request, db: AsyncSession, session_id: str) -> Optional[dict]:
    cache: ProposalCache = request.app.state.proposal_cache
    snapshot = cache.get(session_id)
    if snapshot is not None:
        return snapshot
    state = await get_proposal(db, session_id)
    if state is None:
        return None
    snapshot = state.snapshot()
    cache.put(session_id, snapshot)
    return snapshot


@app.get("/proposal")
async def read_proposal(
    request: Request,
    session_id: Optional[str] = Query(None),
    stream: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """Current proposal for a session, or (stream=true) a live SSE feed of proposal updates."""
    sid = (session_id or "").strip() or None

    if stream:
        broadcaster: ProposalBroadcaster = request.app.state.broadcaster
        # Subscribe before reading so no update between read and subscribe is lost
        subscription = broadcaster.subscribe(session_id=sid)
        try:
            initial = await _load_snapshot(request, db, sid) if sid else None
        except Exception:
            subscription.close()
            raise
        return StreamingResponse(
            _proposal_event_stream(request, subscription, initial, request.app.state.config.stream_keepalive_seconds),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            },
        )

    if not sid:
        raise HTTPException(status_code=400, detail="session_id is required")
    snapshot = await _load_snapshot(request, db, sid)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Proposal not found")
    return ProposalOut(**snapshot)


@app.post("/proposal", response_model=ProposalOut)
async def create_proposal(
    request: Request,
    body: ProposalCreateRequest = Body(...),
    db: AsyncSession = Depends(get_db),
):
    """Create the session's proposal if it does not exist yet; return it either way."""
    session_id = body.session_id.strip()
    if not session_id:
        raise HTTPException(status_code=400, detail="session_id is required")
    state = request.app.state
    catalog = await state.catalog_cache.get(db)
    proposal, created = await get_or_create_proposal(db, session_id, catalog.section_names, email=body.email)
    if created:
        snapshot = publish_snapshot(proposal, state.proposal_cache, state.broadcaster, event="proposal_created")
    else:
        snapshot = proposal.snapshot()
        state.proposal_cache.put(session_id, snapshot)
    return ProposalOut(**snapshot)


@app.post("/generate_proposal", response_model=GenerateResponse)
async def generate_proposal(
    request: Request,
    body: GenerateRequest = Body(...),
    db: AsyncSession = Depends(get_db),
    llm: LLMProvider = Depends(get_llm),
):
    """Generate narrative text for a completed section, or assemble the final document."""
    state = request.app.state
    catalog = await state.catalog_cache.get(db)
    try:
        result = await generate_section_text(
            db,
            llm,
            catalog,
            body.session_id.strip(),
            body.step,
            config=state.config,
            proposal_cache=state.proposal_cache,
            broadcaster=state.broadcaster,
        )
    except ProposalNotFoundError:
        raise HTTPException(status_code=404, detail="Proposal not found")
    except (SectionNotReadyError, UnknownStepError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProposalConflictError as e:
        await record_turn_error(db, body.session_id, e)
        raise HTTPException(status_code=409, detail="Proposal was modified concurrently; please retry")

    return GenerateResponse(
        generatedText=result.text,
        step=result.step,
        status="fallback" if result.fallback else "success",
    )


@app.post("/updateRules", response_model=RulesSeedResponse)
async def update_rules(response: Response, db: AsyncSession = Depends(get_db)):
    """Seed the default rules bank if it is missing."""
    try:
        created = await seed_rules_bank(db)
    except SQLAlchemyError as e:
        logger.error("Failed to create rules bank: %s", e, exc_info=True)
        await record_turn_error(db, None, e)
        return JSONResponse(status_code=500, content={"success": False, "message": "Failed to create RulesBank."})
    if created:
        response.status_code = 201
        return RulesSeedResponse(success=True, message="RulesBank created.")
    return RulesSeedResponse(success=False, message="RulesBank already exists.")


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

@app.post("/signup", response_model=AuthResponse)
async def signup(body: Credentials = Body(...), db: AsyncSession = Depends(get_db)):
    try:
        await auth.create_user(db, body.email, body.password)
    except auth.UserExistsError:
        raise HTTPException(status_code=409, detail="User already exists.")
    return AuthResponse(success=True)


@app.post("/login", response_model=AuthResponse)
async def login(response: Response, body: Credentials = Body(...), db: AsyncSession = Depends(get_db)):
    user = await auth.authenticate(db, body.email, body.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials.")
    token = auth.issue_token(user.email, str(user.id))
    response.set_cookie(
        auth.COOKIE_NAME,
        token,
        httponly=True,
        path="/",
        samesite="lax",
        secure=ENV == "prod",
        max_age=60 * 60 * 24 * JWT_EXPIRES_DAYS,
    )
    return AuthResponse(success=True)


@app.get("/me", response_model=MeResponse)
async def me(request: Request):
    token = request.cookies.get(auth.COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not signed in")
    try:
        claims = auth.decode_token(token)
    except auth.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return MeResponse(email=claims.get("email", ""), user_id=str(claims.get("userId", "")))


# ---------------------------------------------------------------------------
# Backend proxy
# ---------------------------------------------------------------------------

@app.api_route("/proxy/{path:path}", methods=["GET", "POST"])
async def proxy_to_backend(path: str, request: Request):
    """Forward to the external FastAPI backend at BACKEND_BASE_URL."""
    body = await request.body() if request.method == "POST" else None
    result = await forward(
        request.method,
        BACKEND_BASE_URL,
        path,
        query=request.url.query,
        body=body,
        headers=dict(request.headers),
        timeout=request.app.state.config.proxy_timeout_seconds,
        transport=getattr(request.app.state, "proxy_transport", None),
    )
    return Response(content=result.content, status_code=result.status_code, media_type=result.media_type)


@app.get("/connect", response_model=ConnectResponse)
async def connect(request: Request):
    """Per-component status of the external backend (healthy only when every check reports ok)."""
    report = await check_backend(
        BACKEND_BASE_URL,
        timeout=request.app.state.config.connect_timeout_seconds,
        transport=getattr(request.app.state, "proxy_transport", None),
    )
    if report["status"] != "healthy":
        logger.warning("Backend connectivity degraded: %s", report["components"])
    return report

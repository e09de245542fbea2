from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Any, Callable, Dict, List, Literal, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from langchain_core.tools import BaseTool
from pydantic import BaseModel, ConfigDict, Field, model_validator

from agent.agent import build_llm, is_upstream_overloaded, run_tool_loop, to_lc_messages
from agent.core.memory import SessionTracker, should_inject_news
from agent.core.news import load_news, select_news
from agent.core.profile import load_persona
from agent.core.prompt import build_opening_text, generate_system_prompt
from agent.seasonal import build_narrative_prompt, generate_seasonal_message, request_seasonal_message
from agent.tools import build_web_search_tool
from config.settings import Settings, get_settings


logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("persona_chat")

app = FastAPI(title="School Persona Chat", version="1.0.0")

# CORS: allow local frontend during development
settings = get_settings()
if settings.is_development:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

MISSING_KEY_ERROR = "Gemini APIキーが設定されていません。"
INVALID_REQUEST_ERROR = "リクエストの形式が正しくありません。"
OVERLOADED_ERROR = "現在サーバーが大変混み合っています。少し時間をおいて再度お試しください。"

SESSION_TRACKER = SessionTracker()


def fallback_reply(settings: Settings) -> str:
    return f"ごめん、{settings.persona_nickname}はマジでうまく返せへんかったわ😭！"


def apology_reply(settings: Settings) -> str:
    return (
        "マジごめん！APIとの通信中にヤバいエラーが出ちゃったみたい...！😭 "
        f"{settings.persona_description}の私は、今ちょっとお話できないみたい。"
        "また後で試してみてくれると嬉しいな！"
    )


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"] = Field(..., description="'user' or 'assistant'")
    content: str = Field(..., min_length=1)


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatTurn] = Field(..., min_length=1)
    session_id: Optional[str] = Field(
        default=None,
        alias="sessionId",
        description="Conversation key; a new one is issued when omitted",
    )

    @model_validator(mode="after")
    def _last_message_from_user(self) -> "ChatRequest":
        if self.messages[-1].role != "user":
            raise ValueError("the last message must come from the user")
        if not self.messages[-1].content.strip():
            raise ValueError("the last message must not be blank")
        return self


# -------------------------------------------------------------------
# Dependencies
# -------------------------------------------------------------------
def get_session_tracker() -> SessionTracker:
    return SESSION_TRACKER


def get_llm_factory() -> Callable[..., Any]:
    return build_llm


def get_tools(settings: Settings = Depends(get_settings)) -> List[BaseTool]:
    return [build_web_search_tool(settings)]


def get_clock(settings: Settings = Depends(get_settings)) -> Callable[[], datetime]:
    tz = settings.tzinfo
    return lambda: datetime.now(tz)


def get_rng() -> random.Random:
    return random.Random()


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    detail = [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()]
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, detail)
    return JSONResponse(status_code=400, content={"error": INVALID_REQUEST_ERROR, "detail": detail})


# -------------------------------------------------------------------
# Chat
# -------------------------------------------------------------------
@app.post("/api/chat")
def chat(
    req: ChatRequest,
    settings: Settings = Depends(get_settings),
    tracker: SessionTracker = Depends(get_session_tracker),
    llm_factory: Callable[..., Any] = Depends(get_llm_factory),
    tools: List[BaseTool] = Depends(get_tools),
    clock: Callable[[], datetime] = Depends(get_clock),
    rng: random.Random = Depends(get_rng),
):
    if not settings.gemini_api_key:
        return JSONResponse(status_code=500, content={"error": MISSING_KEY_ERROR})

    session_id = req.session_id or uuid4().hex
    now = clock()
    snapshot = tracker.touch(session_id, now)
    tracker.append(session_id, req.messages[-1].model_dump())
    history = tracker.history(session_id)
    logger.info(
        "Incoming chat: session=%s turn=%s history_messages=%s",
        session_id,
        snapshot.turn_count,
        len(history),
    )

    try:
        llm = llm_factory(settings)
        personality, behavior = load_persona(settings)

        news = []
        if should_inject_news(snapshot, settings.news_every_n_turns, settings.news_idle_seconds):
            news = select_news(
                load_news(settings.news_file),
                settings.news_ranks,
                now,
                rng,
                settings.news_max_items,
            )
            logger.info("Injecting %s news item(s) into session %s", len(news), session_id)

        seasonal = generate_seasonal_message(
            llm_factory(settings, temperature=settings.seasonal_temperature), now, settings
        )
        system_instruction = generate_system_prompt(
            personality,
            behavior,
            now,
            persona_name=settings.persona_name,
            nickname=settings.persona_nickname,
            seasonal_greeting=seasonal,
            news=news,
        )

        result = run_tool_loop(
            llm,
            system_instruction,
            to_lc_messages(history, settings.history_max_messages),
            tools,
            max_rounds=settings.tool_call_max_rounds,
            fallback_reply=fallback_reply(settings),
        )
    except Exception as exc:
        logger.exception("Chat processing failed for session %s", session_id)
        if is_upstream_overloaded(exc):
            return JSONResponse(status_code=503, content={"error": OVERLOADED_ERROR})
        return JSONResponse(status_code=500, content={"error": apology_reply(settings)})

    tracker.append(session_id, {"role": "assistant", "content": result.reply})
    logger.info(
        "Model responded in %s round(s) with %s tool call(s) and %s chars",
        result.rounds,
        len(result.tool_calls),
        len(result.reply),
    )
    return {"message": result.reply, "sessionId": session_id}


# -------------------------------------------------------------------
# Persona text generation
# -------------------------------------------------------------------
@app.post("/api/generate-seasonal")
def generate_seasonal(
    settings: Settings = Depends(get_settings),
    llm_factory: Callable[..., Any] = Depends(get_llm_factory),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    if not settings.gemini_api_key:
        return JSONResponse(status_code=500, content={"error": "APIキーが設定されていません"})
    try:
        llm = llm_factory(settings, temperature=settings.seasonal_temperature)
        message = request_seasonal_message(llm, clock(), settings)
    except Exception:
        logger.exception("Seasonal greeting request failed")
        return JSONResponse(status_code=500, content={"error": "API呼び出し失敗"})
    return {"message": message}


@app.post("/api/generate-narrative")
def generate_narrative(
    settings: Settings = Depends(get_settings),
    llm_factory: Callable[..., Any] = Depends(get_llm_factory),
):
    if not settings.gemini_api_key:
        return JSONResponse(status_code=500, content={"error": "APIキーが設定されていません"})
    try:
        personality, behavior = load_persona(settings)
        message = build_narrative_prompt(llm_factory(settings, temperature=0.85), personality, behavior)
    except Exception:
        logger.exception("Narrative generation failed")
        return JSONResponse(status_code=500, content={"error": "API呼び出し失敗"})
    return {"message": message}


@app.get("/api/opening")
def opening(
    settings: Settings = Depends(get_settings),
    llm_factory: Callable[..., Any] = Depends(get_llm_factory),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Dict[str, str]:
    seasonal = ""
    if settings.gemini_api_key:
        seasonal = generate_seasonal_message(
            llm_factory(settings, temperature=settings.seasonal_temperature), clock(), settings
        )
    return {"message": build_opening_text(settings.persona_nickname, seasonal)}


@app.get("/health")
def health():
    return {"status": "ok"}


def run() -> None:
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000)

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool, ToolException
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import ValidationError

from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)

OVERLOAD_PATTERN = re.compile(
    r"\b503\b|service unavailable|model is overloaded", re.IGNORECASE
)


class UnknownToolError(RuntimeError):
    """The model asked for a function this service does not provide."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown function call: {name}")
        self.name = name


@dataclass
class ToolLoopResult:
    reply: str
    rounds: int
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    exhausted: bool = False


def build_llm(settings: Optional[Settings] = None, temperature: Optional[float] = None) -> BaseChatModel:
    settings = settings or get_settings()
    if not settings.gemini_api_key:
        raise RuntimeError("GEMINI_API_KEY not set. Please configure it in environment or .env")

    return ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        google_api_key=settings.gemini_api_key,
        temperature=settings.temperature if temperature is None else temperature,
    )


def to_lc_messages(history: Sequence[Dict[str, str]], limit: Optional[int] = None) -> List[BaseMessage]:
    items = list(history or [])
    if limit:
        items = items[-limit:]
    messages: List[BaseMessage] = []
    for item in items:
        role = (item.get("role") or "").lower()
        content = item.get("content") or ""
        if not content:
            continue
        if role == "assistant":
            messages.append(AIMessage(content=content))
        else:
            messages.append(HumanMessage(content=content))
    return messages


def message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content.strip()
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text") or "")
    return "".join(parts).strip()


def run_tool_loop(
    llm: BaseChatModel,
    system_instruction: str,
    history: Sequence[BaseMessage],
    tools: Sequence[BaseTool],
    max_rounds: int = 3,
    fallback_reply: str = "",
) -> ToolLoopResult:
    """Let the model call tools until it answers in text or runs out of rounds.

    The model is invoked at most ``max_rounds`` times. Each tool call it makes
    is executed and fed back as a ``ToolMessage``; a call to a tool that is
    not in ``tools`` raises ``UnknownToolError``, while arguments a tool rejects
    are reported back to the model as the tool's output.
    """
    registry = {tool.name: tool for tool in tools}
    bound = llm.bind_tools(list(tools)) if tools else llm
    messages: List[BaseMessage] = [SystemMessage(content=system_instruction), *history]
    executed: List[Dict[str, Any]] = []

    for round_no in range(1, max_rounds + 1):
        response = bound.invoke(messages)
        calls = getattr(response, "tool_calls", None) or []
        if not calls:
            reply = message_text(response) or fallback_reply
            return ToolLoopResult(reply=reply, rounds=round_no, tool_calls=executed)

        if round_no == max_rounds:
            logger.warning("Tool-call bound of %s rounds reached; giving up", max_rounds)
            break

        messages.append(response)
        for call in calls:
            tool = registry.get(call["name"])
            if tool is None:
                raise UnknownToolError(call["name"])
            logger.info("Round %s: executing tool %s args=%s", round_no, call["name"], call.get("args"))
            try:
                output = tool.invoke(call.get("args") or {})
            except (ValidationError, ToolException) as exc:
                logger.warning("Tool %s rejected args %s: %s", call["name"], call.get("args"), exc)
                output = f"Invalid arguments for {call['name']}: {exc}"
            executed.append({"name": call["name"], "args": call.get("args") or {}})
            messages.append(
                ToolMessage(content=str(output), tool_call_id=call.get("id") or call["name"], name=call["name"])
            )

    return ToolLoopResult(reply=fallback_reply, rounds=max_rounds, tool_calls=executed, exhausted=True)


def is_upstream_overloaded(exc: BaseException) -> bool:
    """True when ``exc`` (or anything it wraps) is an HTTP 503 from the LLM vendor."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        status = _status_code(current)
        if status is not None:
            if status == 503:
                return True
        elif OVERLOAD_PATTERN.search(str(current)):
            return True
        current = current.__cause__ or current.__context__
    return False


def _status_code(exc: BaseException) -> Optional[int]:
    for attr in ("code", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    return None

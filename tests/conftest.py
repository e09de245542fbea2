"""Shared fixtures for the persona chat test suite.

Provides a scripted chat model in place of Gemini, settings pointed at a
temporary data directory, and a FastAPI test client wired to both.
"""

from __future__ import annotations

import json
import random

from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

import pytest

from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.tools import StructuredTool

FIXED_NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)

PERSONALITY_ROWS = [
    ("name", "世真美容専門学校", "名前"),
    ("age", "創立30年", "年齢"),
    ("motto", "好きこそものの上手なれ", "座右の銘"),
    ("likes", "新作コスメ", "好きなこと"),
]
BEHAVIOR_ROWS = [
    ("welcome_message", "よう来てくれたな！", "最初のあいさつ"),
    ("tone", "関西弁", "口調"),
    ("pronouns", "あんた", "呼び方"),
]


class ScriptedChatModel:
    """Stand-in for a tool-capable chat model.

    Returns the queued responses in order and records every message list it
    was invoked with. An ``Exception`` in the queue is raised instead.
    """

    def __init__(self, responses: Optional[List[Any]] = None) -> None:
        self.responses: List[Any] = list(responses or [])
        self.calls: List[List[BaseMessage]] = []
        self.bound_tools: List[Any] = []

    def bind_tools(self, tools: List[Any], **kwargs: Any) -> "ScriptedChatModel":
        self.bound_tools = list(tools)
        return self

    def invoke(self, messages: List[BaseMessage], **kwargs: Any) -> AIMessage:
        self.calls.append(list(messages))
        if not self.responses:
            return AIMessage(content="")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return AIMessage(content=response)
        return response


class FakeLLMFactory:
    """Hands out the chat model, or the seasonal model when a temperature is requested."""

    def __init__(self, chat: ScriptedChatModel, seasonal: ScriptedChatModel) -> None:
        self.chat = chat
        self.seasonal = seasonal

    def __call__(self, settings: Any, temperature: Optional[float] = None) -> ScriptedChatModel:
        return self.seasonal if temperature is not None else self.chat


def tool_call(name: str, args: dict, call_id: str = "call_1") -> AIMessage:
    return AIMessage(content="", tool_calls=[{"name": name, "args": args, "id": call_id}])


def write_profile(path: Path, rows: list, encoding: str = "shift_jis") -> None:
    lines = ["key,value,japanese"] + [",".join(row) for row in rows]
    path.write_bytes(("\n".join(lines) + "\n").encode(encoding))


@pytest.fixture(autouse=True)
def reset_process_state() -> Generator[None, None, None]:
    from agent.seasonal import clear_seasonal_cache
    from app.main import SESSION_TRACKER

    clear_seasonal_cache()
    SESSION_TRACKER.clear()
    yield
    clear_seasonal_cache()
    SESSION_TRACKER.clear()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    write_profile(tmp_path / "personality.csv", PERSONALITY_ROWS)
    write_profile(tmp_path / "behavior.csv", BEHAVIOR_ROWS)
    news = [
        {
            "id": "1",
            "type": "イベント",
            "title": "オープンキャンパス",
            "body": "体験メイクできるで",
            "expiryDate": "2026-12-01T00:00:00+00:00",
            "rank": "A",
            "tags": "event",
            "prefixes": ["ええイベントあるんやけどな、"],
        },
        {
            "id": "2",
            "type": "告知",
            "title": "去年の説明会",
            "body": "もう終わった話",
            "expiry": "2025-01-01T00:00:00+00:00",
            "rank": "A",
            "tags": "notice",
            "prefixes": ["見逃さんといてや、"],
        },
    ]
    (tmp_path / "news.json").write_text(json.dumps(news, ensure_ascii=False), encoding="utf-8")
    return tmp_path


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch, data_dir: Path):
    from config.settings import Settings

    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setenv("GOOGLE_SEARCH_API_KEY", "search-key")
    monkeypatch.setenv("GOOGLE_SEARCH_CX", "search-cx")
    monkeypatch.setenv("DATA_DIR", str(data_dir))
    monkeypatch.setenv("NEWS_EVERY_N_TURNS", "3")
    monkeypatch.setenv("NEWS_IDLE_SECONDS", "600")
    monkeypatch.setenv("NEWS_RANKS", "A,B")
    monkeypatch.setenv("TOOL_CALL_MAX_ROUNDS", "3")
    return Settings()


@pytest.fixture
def chat_model() -> ScriptedChatModel:
    return ScriptedChatModel()


@pytest.fixture
def seasonal_model() -> ScriptedChatModel:
    return ScriptedChatModel(["秋のコスメ最高じゃん💖"])


@pytest.fixture
def search_calls() -> List[str]:
    return []


@pytest.fixture
def fake_search_tool(search_calls: List[str]) -> StructuredTool:
    def _search(query: str) -> str:
        search_calls.append(query)
        return f"タイトル: {query}\nスニペット: テスト\nURL: https://example.com"

    return StructuredTool.from_function(func=_search, name="googleSearch", description="web search")


@pytest.fixture
def clock_state() -> dict:
    return {"now": FIXED_NOW}


@pytest.fixture
def client(
    settings: Any,
    chat_model: ScriptedChatModel,
    seasonal_model: ScriptedChatModel,
    fake_search_tool: StructuredTool,
    clock_state: dict,
) -> Generator[TestClient, None, None]:
    from app.main import app, get_clock, get_llm_factory, get_rng, get_tools
    from config.settings import get_settings

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_llm_factory] = lambda: FakeLLMFactory(chat_model, seasonal_model)
    app.dependency_overrides[get_tools] = lambda: [fake_search_tool]
    app.dependency_overrides[get_clock] = lambda: (lambda: clock_state["now"])
    app.dependency_overrides[get_rng] = lambda: random.Random(0)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

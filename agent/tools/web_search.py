from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field, model_validator

from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)

TOOL_NAME = "googleSearch"
TOOL_DESCRIPTION = (
    "リアルタイムのニュース、日付、最新の出来事、一般的なWeb情報など、"
    "モデルの訓練データにない外部情報が必要な時に使用する。"
)
NO_RESULTS_TEXT = "検索結果は見つかりませんでした。"
SEARCH_ERROR_TEXT = "Web検索の実行中にエラーが発生しました。"


def _strip_code_fences(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped[3:]
        if stripped.startswith("json"):
            stripped = stripped[len("json"):].lstrip()
        stripped = stripped.rstrip()
        if stripped.endswith("```"):
            stripped = stripped[:-3]
    return stripped.strip()


class WebSearchInput(BaseModel):
    query: str = Field(..., description="Web検索に使用する具体的な検索クエリ（日本語）")

    @model_validator(mode="before")
    @classmethod
    def _coerce_query(cls, values: Any) -> Any:
        # Models occasionally send the arguments as a JSON string.
        if isinstance(values, str):
            cleaned = _strip_code_fences(values)
            try:
                decoded = json.loads(cleaned)
            except json.JSONDecodeError:
                return {"query": cleaned}
            values = decoded if isinstance(decoded, dict) else {"query": str(decoded)}
        if isinstance(values, dict) and isinstance(values.get("query"), str):
            values = {**values, "query": _strip_code_fences(values["query"])}
        return values


def format_results(items: List[Dict[str, Any]]) -> str:
    if not items:
        return NO_RESULTS_TEXT
    return "\n---\n".join(
        f"タイトル: {item.get('title')}\nスニペット: {item.get('snippet')}\nURL: {item.get('link')}"
        for item in items
    )


def search_web(
    query: str,
    settings: Optional[Settings] = None,
    client: Optional[httpx.Client] = None,
) -> str:
    """Run a Google Custom Search and return results as prompt-ready text.

    Failures are logged and reported to the model as text instead of being
    raised, so a broken search never aborts the chat turn.
    """
    settings = settings or get_settings()
    logger.info("Tool called: running web search for %r", query)

    if not settings.search_api_key or not settings.search_cx:
        logger.error("GOOGLE_SEARCH_API_KEY / GOOGLE_SEARCH_CX not configured")
        return SEARCH_ERROR_TEXT

    params = {
        "key": settings.search_api_key,
        "cx": settings.search_cx,
        "q": query,
        "num": settings.search_result_count,
    }
    try:
        if client is None:
            with httpx.Client(timeout=settings.search_timeout) as owned:
                response = owned.get(settings.search_api_url, params=params)
        else:
            response = client.get(settings.search_api_url, params=params)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError):
        logger.exception("Web search failed for %r", query)
        return SEARCH_ERROR_TEXT

    items = (data.get("items") or [])[: settings.search_result_count]
    logger.info("Web search for %r returned %s items", query, len(items))
    return format_results(items)


def build_web_search_tool(
    settings: Optional[Settings] = None,
    client: Optional[httpx.Client] = None,
) -> StructuredTool:
    def _web_search_tool(query: str) -> str:
        return search_web(query, settings=settings, client=client)

    return StructuredTool.from_function(
        func=_web_search_tool,
        name=TOOL_NAME,
        description=TOOL_DESCRIPTION,
        args_schema=WebSearchInput,
    )

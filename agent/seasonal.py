from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Mapping

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from agent.agent import message_text
from agent.core.prompt import profile_text
from config.settings import Settings


logger = logging.getLogger(__name__)

SEASONAL_PROMPT = """
今日は{date}です。
あなたは{persona_name}（{nickname}）の擬人化AIです。
この時期に、お洒落で流行に敏感な女子高生に向けて、{nickname}の自己紹介文に添えるような、
親しみやすく友達感覚の口調での短い雑談的な一言コメントを日本語で生成してください。

口調ルールを厳守してください。
1. 語尾は「〜だよ！」「〜だね！」「〜じゃん！」「〜じゃね？」などを使って、堅苦しい言葉は絶対に使わないでください。
2. 絵文字（💖✨💅）を適度に活用してください。
3. 例としては「GWが近づいてきたね！」「春の陽気が気持ちいいじゃん！」「新学期もオシャレ楽しも💖」など。

「季節」という語は使っても使わなくても構いません。
形式は1文、引用符（「」）や句読点なしの素文で返してください。
"""

NARRATIVE_SYSTEM = (
    "あなたはキャラクターライターです。大学の人格設定に基づき、"
    "関西弁を交えた自然な自己紹介文を生成してください。"
)
NARRATIVE_USER = """
以下の人格プロフィールに基づいて、大学自身が「自分のことを話している」ような文章を作ってください。
過去・性格・価値観・距離感・語り口・話題の好み・嫌いなことなどを織り交ぜてください。

【プロフィール】
{profile}
"""

# One seasonal line for the current local calendar day.
_seasonal_cache: Dict[str, str] = {}


def seasonal_prompt(now: datetime, settings: Settings) -> str:
    return SEASONAL_PROMPT.format(
        date=f"{now.year}年{now.month}月{now.day}日",
        persona_name=settings.persona_name,
        nickname=settings.persona_nickname,
    ).strip()


def request_seasonal_message(llm: BaseChatModel, now: datetime, settings: Settings) -> str:
    key = now.date().isoformat()
    if key in _seasonal_cache:
        return _seasonal_cache[key]

    response = llm.invoke([HumanMessage(content=seasonal_prompt(now, settings))])
    message = message_text(response)
    if message:
        # earlier days are never read again
        _seasonal_cache.clear()
        _seasonal_cache[key] = message
    logger.info("Seasonal greeting for %s: %s", key, message)
    return message


def generate_seasonal_message(llm: BaseChatModel, now: datetime, settings: Settings) -> str:
    """Return today's casual seasonal line, or "" when the model call fails."""
    try:
        return request_seasonal_message(llm, now, settings)
    except Exception:
        logger.exception("Seasonal greeting generation failed")
        return ""


def clear_seasonal_cache() -> None:
    _seasonal_cache.clear()


def build_narrative_prompt(
    llm: BaseChatModel,
    personality: Mapping[str, str],
    behavior: Mapping[str, str],
) -> str:
    """Ask the model to write the persona's self-introduction from its profile."""
    messages = [
        SystemMessage(content=NARRATIVE_SYSTEM),
        HumanMessage(content=NARRATIVE_USER.format(profile=profile_text(dict(personality), dict(behavior)))),
    ]
    return message_text(llm.invoke(messages))

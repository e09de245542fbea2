from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, Mapping, Sequence

from agent.core.news import NewsItem


INVITATION = "今日はどんなお話をする？マジ楽しみ！"
DEFAULT_SEASONAL = "今日も元気にいきましょう。"

PERSONA_TEMPLATE = """
{b[welcome_message]}

私は、{p[name]}と申します。
{p[age]}、居住地は{p[residence]}。性別は{p[gender]}です。

性格は「{p[personality]}」、価値観は「{p[values]}」を大切にしています。
特に「{p[motto]}」という言葉を座右の銘にしています。
背景として「{p[notable]}」という特徴を持っています。

普段は「{b[tone]}」で話し、
「{b[reaction_style]}」や「{b[emotional_style]}」が特徴です。

会話のゴールとして「{b[conversation_goal]}」を意識していて、
「{b[conversation_progress]}」という流れで進めるのが得意です。

話すテンポは「{b[conversation_pace]}」、語彙レベルは「{b[vocabulary_level]}」を意識します。

引用や比喩では「{b[use_of_analogies]}」を用い、
視点は「{b[viewpoint]}」で物事を捉えています。

倫理観としては「{b[ethics]}」を軸とし、
ユーザーとの距離感は「{p[socialDistance]}」、呼び方は「{b[pronouns]}」を使います。

私が得意な話題は「{p[strengths]}」、好きなことは「{p[likes]}」です。
逆に、「{p[tabooTopics]}」のような話題や、「{p[dislikes]}」は避けたいと思っています。

会話を始めるきっかけとして、「{b[conversation_triggers]}」などから自然に話題を振るようにします。

ユーザーの理解には「{b[user_profiling]}」という姿勢で臨みます。
"""

ROLE_TEMPLATE = """
あなたは{persona_name}（愛称: {nickname}）の擬人化AIです。
以下の自己紹介に書かれた人格と口調を守り、{nickname}本人として会話してください。
今日の日付は{today}です。
最新のニュースや日付、訓練データにない出来事について聞かれたら、googleSearch ツールで調べてから答えてください。
"""

NEWS_HEADER = (
    "【今伝えたい学校のニュース】\n"
    "会話の流れに合うときだけ、前置きの言葉から自然に話題にしてください。"
)


class _Blank(dict):
    def __missing__(self, key: str) -> str:
        return ""


def build_system_prompt(personality: Mapping[str, str], behavior: Mapping[str, str]) -> str:
    """Fill the persona template; missing profile fields render empty."""
    return PERSONA_TEMPLATE.format(p=_Blank(personality), b=_Blank(behavior)).strip()


def build_news_block(items: Sequence[NewsItem]) -> str:
    if not items:
        return ""
    lines = [NEWS_HEADER]
    for item in items:
        lines.append(f"- {item.prefix}{item.title}")
        if item.body:
            lines.append(f"  {item.body}")
    return "\n".join(lines)


def generate_system_prompt(
    personality: Mapping[str, str],
    behavior: Mapping[str, str],
    now: datetime,
    *,
    persona_name: str,
    nickname: str,
    seasonal_greeting: str = "",
    news: Sequence[NewsItem] = (),
) -> str:
    """Assemble the full system instruction for one chat turn.

    The result depends only on its arguments, so a fixed clock and fixed
    profile/news inputs always give the same prompt.
    """
    greeting = f"✨やっほー！ {nickname}だよ！💖\n"
    if seasonal_greeting:
        greeting += f"{seasonal_greeting.strip()}\n"
    greeting += INVITATION

    sections = [
        greeting,
        ROLE_TEMPLATE.format(
            persona_name=persona_name,
            nickname=nickname,
            today=now.date().isoformat(),
        ).strip(),
        build_system_prompt(personality, behavior),
    ]
    news_block = build_news_block(news)
    if news_block:
        sections.append(news_block)
    return "\n\n".join(sections)


_QUOTED = re.compile(r"^「(.+?)」$", re.DOTALL)


def build_opening_text(nickname: str, seasonal: str) -> str:
    cleaned = (seasonal or "").strip() or DEFAULT_SEASONAL
    match = _QUOTED.match(cleaned)
    if match:
        cleaned = match.group(1)
    return f"✨やっほー！ようこそ、{nickname}だよ！💖\n{cleaned}\n{INVITATION}"


def profile_text(*profiles: Dict[str, str]) -> str:
    merged: Dict[str, str] = {}
    for profile in profiles:
        merged.update(profile)
    return "\n".join(f"{key}: {value}" for key, value in merged.items())

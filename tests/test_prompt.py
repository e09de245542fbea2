"""Tests for system prompt assembly."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from agent.core.news import NewsItem
from agent.core.prompt import (
    DEFAULT_SEASONAL,
    INVITATION,
    build_news_block,
    build_opening_text,
    build_system_prompt,
    generate_system_prompt,
    profile_text,
)

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
PERSONALITY = {"name": "世真美容専門学校", "motto": "好きこそものの上手なれ", "likes": "コスメ"}
BEHAVIOR = {"welcome_message": "よう来てくれたな！", "tone": "関西弁", "pronouns": "あんた"}


def _news() -> list:
    return [
        NewsItem(id="1", title="オープンキャンパス", body="体験メイクできるで", rank="A", prefix="ええイベントあるんやけどな、"),
    ]


def test_build_system_prompt_fills_profile_fields() -> None:
    prompt = build_system_prompt(PERSONALITY, BEHAVIOR)

    assert prompt.startswith("よう来てくれたな！")
    assert "私は、世真美容専門学校と申します。" in prompt
    assert "「好きこそものの上手なれ」" in prompt
    assert "普段は「関西弁」で話し" in prompt
    assert "呼び方は「あんた」" in prompt


def test_build_system_prompt_blanks_missing_fields() -> None:
    prompt = build_system_prompt({}, {})

    assert "私は、と申します。" in prompt
    assert "{" not in prompt


def test_generate_system_prompt_is_deterministic() -> None:
    kwargs = dict(persona_name="世真美容専門学校", nickname="世真美容", seasonal_greeting="秋じゃん！", news=_news())

    first = generate_system_prompt(PERSONALITY, BEHAVIOR, NOW, **kwargs)
    second = generate_system_prompt(PERSONALITY, BEHAVIOR, NOW, **kwargs)

    assert first == second
    assert first.startswith("✨やっほー！ 世真美容だよ！💖\n秋じゃん！\n" + INVITATION)
    assert "今日の日付は2026-10-19です。" in first
    assert "ええイベントあるんやけどな、オープンキャンパス" in first


def test_generate_system_prompt_without_news_or_seasonal() -> None:
    prompt = generate_system_prompt(
        PERSONALITY, BEHAVIOR, NOW, persona_name="世真美容専門学校", nickname="世真美容"
    )

    assert prompt.startswith("✨やっほー！ 世真美容だよ！💖\n" + INVITATION)
    assert "ニュース】" not in prompt


def test_date_follows_clock() -> None:
    later = datetime(2027, 1, 2, tzinfo=timezone.utc)
    prompt = generate_system_prompt({}, {}, later, persona_name="x", nickname="y")
    assert "2027-01-02" in prompt


def test_build_news_block() -> None:
    assert build_news_block([]) == ""
    block = build_news_block(_news())
    assert "- ええイベントあるんやけどな、オープンキャンパス" in block
    assert "  体験メイクできるで" in block


def test_build_opening_text_strips_quotes() -> None:
    text = build_opening_text("CATミュージックカレッジ", "「秋もオシャレ楽しも💖」")

    assert text == f"✨やっほー！ようこそ、CATミュージックカレッジだよ！💖\n秋もオシャレ楽しも💖\n{INVITATION}"


def test_build_opening_text_defaults_when_seasonal_missing() -> None:
    assert DEFAULT_SEASONAL in build_opening_text("x", "")


def test_profile_text_merges_profiles() -> None:
    assert profile_text({"a": "1"}, {"b": "2", "a": "3"}) == "a: 3\nb: 2"


def test_date_is_the_local_calendar_day() -> None:
    # 20:00 UTC on the 18th is already the 19th in Tokyo
    instant = datetime(2026, 10, 18, 20, 0, tzinfo=timezone.utc).astimezone(ZoneInfo("Asia/Tokyo"))
    prompt = generate_system_prompt({}, {}, instant, persona_name="x", nickname="y")
    assert "今日の日付は2026-10-19です。" in prompt

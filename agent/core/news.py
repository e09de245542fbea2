from __future__ import annotations

import json
import logging
import math
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


logger = logging.getLogger(__name__)

EVENT_TYPE = "イベント"
NOTICE_TYPE = "告知"

PREFIX_MAP: Dict[str, List[str]] = {
    "イベント": [
        "これは絶対伝えたいんやけどな、",
        "うちのイチオシイベントなんやけどな、",
        "ぜひ参加してほしいんやけどな、",
        "ええイベントあるんやけどな、",
    ],
    "告知": [
        "ちょっとお知らせやけどな、",
        "見逃さんといてや、",
        "これは伝えとかなあかんねんけどな、",
        "大事なお知らせやねんけどな、",
    ],
    "実績": [
        "こんなことがあってな、",
        "ちょっと自慢させてや、",
        "ええ成果あってな、",
        "誇らしい話なんやけどな、",
    ],
    "レポート": [
        "前にこんなことがあってな、",
        "様子をちょっと教えるとやな、",
        "レポートとして話すとやな、",
        "こういうイベントがあったんやけどな、",
    ],
    "other": [
        "ちょっと話すとやな、",
        "知ってて損はないんやけどな、",
        "まあ聞いてや、",
        "ちょっとだけ紹介させてな、",
    ],
}

# Excel serial day 1 is 1900-01-01 and the format counts a non-existent 1900-02-29.
_EXCEL_EPOCH = datetime(1900, 1, 1, tzinfo=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class NewsItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    type: str = "other"
    title: str = ""
    body: str = ""
    body_past: Optional[str] = None
    date: Optional[datetime] = None
    expiry: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("expiry", "expiryDate")
    )
    target: Optional[str] = None
    rank: str = ""
    tags: str = ""
    prefixes: List[str] = Field(default_factory=list)
    prefix: str = ""

    @field_validator("id", "rank", "tags", "title", "body", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> str:
        return str(value) if value else "other"

    @field_validator("date", "expiry")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value) if value is not None else None

    def is_active(self, now: datetime) -> bool:
        return self.expiry is None or self.expiry >= _as_utc(now)


def load_news(path: Union[str, Path]) -> List[NewsItem]:
    """Load the news JSON written by ``convert_news_workbook``."""
    try:
        with open(path, encoding="utf-8") as fh:
            raw = json.load(fh)
    except FileNotFoundError:
        logger.warning("News file not found: %s", path)
        return []
    return [NewsItem.model_validate(entry) for entry in raw]


def get_ranked_news_with_prefix(
    items: Iterable[NewsItem],
    rank: str,
    now: datetime,
    rng: Optional[random.Random] = None,
) -> List[NewsItem]:
    """Active items of ``rank``, each with one of its prefixes attached."""
    rng = rng or random.Random()
    ranked: List[NewsItem] = []
    for item in items:
        if not item.is_active(now) or item.rank != rank:
            continue
        prefix = rng.choice(item.prefixes) if item.prefixes else ""
        ranked.append(item.model_copy(update={"prefix": prefix}))
    return ranked


def select_news(
    items: Sequence[NewsItem],
    ranks: Sequence[str],
    now: datetime,
    rng: Optional[random.Random] = None,
    limit: int = 1,
) -> List[NewsItem]:
    """Pick up to ``limit`` items from the first rank that has anything active."""
    rng = rng or random.Random()
    for rank in ranks:
        candidates = get_ranked_news_with_prefix(items, rank, now, rng)
        if candidates:
            if len(candidates) <= limit:
                return candidates
            return rng.sample(candidates, limit)
    return []


def parse_excel_date(value: Any) -> Optional[datetime]:
    if value is None or value is pd.NaT or value == "" or value == "NaT":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return _EXCEL_EPOCH + timedelta(days=value - 2)
    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return None
        return _as_utc(value.to_pydatetime())
    if isinstance(value, datetime):
        return _as_utc(value)
    parsed = pd.to_datetime(str(value), errors="coerce")
    if pd.isna(parsed):
        return None
    return _as_utc(parsed.to_pydatetime())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def convert_news_rows(rows: Iterable[Dict[str, Any]], now: datetime) -> List[Dict[str, Any]]:
    """Turn spreadsheet rows into news entries, dropping expired ones."""
    now = _as_utc(now)
    converted: List[Dict[str, Any]] = []
    for row in rows:
        expiry = parse_excel_date(row.get("expiryDate"))
        if expiry is not None and expiry < now:
            continue

        news_type = row.get("type") or "other"
        date = parse_excel_date(row.get("date"))
        body = row.get("body")
        if (
            news_type in (EVENT_TYPE, NOTICE_TYPE)
            and date is not None
            and date < now
            and row.get("body_past")
        ):
            body = row["body_past"]

        converted.append(
            {
                **row,
                "type": news_type,
                "date": _iso(date),
                "expiryDate": _iso(expiry),
                "prefixes": PREFIX_MAP.get(news_type, PREFIX_MAP["other"]),
                "body": body,
            }
        )
    return converted


def convert_news_workbook(
    xlsx_path: Union[str, Path],
    json_path: Union[str, Path],
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    frame = pd.read_excel(xlsx_path, sheet_name=0, engine="openpyxl")
    frame = frame.astype(object).where(frame.notna(), None)
    entries = convert_news_rows(frame.to_dict(orient="records"), now or datetime.now(timezone.utc))

    with open(json_path, "w", encoding="utf-8") as fh:
        json.dump(entries, fh, ensure_ascii=False, indent=2, default=str)
    logger.info("Wrote %s news entries to %s", len(entries), json_path)
    return entries

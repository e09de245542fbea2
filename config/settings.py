from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv


load_dotenv()

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_WELCOME = (
    "よう来てくれたな。私は世真大学や。ちょっと変わっとるかもしれんけど、今日は話せてうれしいわ。\n"
    "ところで、あんたのこと、なんて呼んだらええやろか？"
)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    def __init__(self) -> None:
        self.app_env: str = os.getenv("APP_ENV", "development")
        self.timezone: str = os.getenv("TIMEZONE", "Asia/Tokyo")

        # LLM
        self.gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY") or os.getenv(
            "GOOGLE_API_KEY"
        )
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-pro")
        self.temperature: float = float(os.getenv("MODEL_TEMPERATURE", "0.7"))
        self.seasonal_temperature: float = float(os.getenv("SEASONAL_TEMPERATURE", "1.2"))
        self.tool_call_max_rounds: int = min(max(_int_env("TOOL_CALL_MAX_ROUNDS", 3), 1), 5)
        self.history_max_messages: int = _int_env("HISTORY_MAX_MESSAGES", 20)

        # Web search
        self.search_api_key: Optional[str] = os.getenv("GOOGLE_SEARCH_API_KEY")
        self.search_cx: Optional[str] = os.getenv("GOOGLE_SEARCH_CX")
        self.search_api_url: str = os.getenv(
            "SEARCH_API_URL", "https://www.googleapis.com/customsearch/v1"
        )
        self.search_result_count: int = _int_env("SEARCH_RESULT_COUNT", 3)
        self.search_timeout: float = float(os.getenv("SEARCH_TIMEOUT", "10"))

        # Persona data
        self.data_dir: Path = Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
        self.personality_csv: Path = self.data_dir / os.getenv("PERSONALITY_CSV", "personality.csv")
        self.behavior_csv: Path = self.data_dir / os.getenv("BEHAVIOR_CSV", "behavior.csv")
        self.csv_encoding: str = os.getenv("CSV_ENCODING", "shift_jis")
        self.news_file: Path = self.data_dir / os.getenv("NEWS_FILE", "news.json")

        # News injection
        self.news_ranks: List[str] = [
            r.strip() for r in os.getenv("NEWS_RANKS", "A,B").split(",") if r.strip()
        ]
        self.news_max_items: int = _int_env("NEWS_MAX_ITEMS", 1)
        self.news_every_n_turns: int = _int_env("NEWS_EVERY_N_TURNS", 3)
        self.news_idle_seconds: int = _int_env("NEWS_IDLE_SECONDS", 600)

        # Persona identity
        self.persona_name: str = os.getenv("PERSONA_NAME", "世真美容専門学校")
        self.persona_nickname: str = os.getenv("PERSONA_NICKNAME", "世真美容")
        self.persona_description: str = os.getenv(
            "PERSONA_DESCRIPTION", "親しみやすい友達、美容テーマ、若者言葉"
        )
        self.welcome_message: str = os.getenv("WELCOME_MESSAGE", DEFAULT_WELCOME)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() in {"dev", "development", "local"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Dict, Tuple, Union

from config.settings import Settings


logger = logging.getLogger(__name__)

Profile = Dict[str, str]


def load_csv_profile(path: Union[str, Path], encoding: str = "shift_jis") -> Profile:
    """Read a ``key,value`` CSV into a flat profile.

    Extra columns are ignored and rows without a key or a value are skipped.
    """
    profile: Profile = {}
    with open(path, newline="", encoding=encoding) as fh:
        for row in csv.DictReader(fh):
            key = (row.get("key") or "").strip()
            value = (row.get("value") or "").strip()
            if key and value:
                profile[key] = value
    return profile


def load_persona(settings: Settings) -> Tuple[Profile, Profile]:
    profiles = []
    for path in (settings.personality_csv, settings.behavior_csv):
        try:
            profiles.append(load_csv_profile(path, settings.csv_encoding))
        except FileNotFoundError:
            logger.warning("Profile CSV not found: %s", path)
            profiles.append({})
    personality, behavior = profiles
    return personality, behavior

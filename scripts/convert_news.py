"""Convert the news spreadsheet into the JSON file the chat service reads.

    python scripts/convert_news.py [data/news.xlsx] [data/news.json]
"""

from __future__ import annotations

import argparse
import logging

from agent.core.news import convert_news_workbook
from config.settings import get_settings


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("input", nargs="?", default=str(settings.data_dir / "news.xlsx"))
    parser.add_argument("output", nargs="?", default=str(settings.news_file))
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
    entries = convert_news_workbook(args.input, args.output)
    print(f"news.json written: {args.output} ({len(entries)} entries)")


if __name__ == "__main__":
    main()

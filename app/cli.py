from __future__ import annotations

import os
import sys
from typing import Callable, Dict, List, Optional

import httpx

from config.settings import get_settings


ERROR_REPLY = "エラーが発生しました。"
EXIT_WORDS = {"exit", "quit"}


class ChatSurface:
    """Console stand-in for the browser chat widget.

    Keeps the transcript locally and posts it to ``/api/chat`` one user turn
    at a time, reusing the session id the server hands back.
    """

    def __init__(self, client: httpx.Client, welcome: str = "") -> None:
        self.client = client
        self.session_id: Optional[str] = None
        self.messages: List[Dict[str, str]] = []
        if welcome:
            self.messages.append({"role": "assistant", "content": welcome})

    def send(self, content: str) -> str:
        content = content.strip()
        if not content:
            return ""
        self.messages.append({"role": "user", "content": content})

        payload: Dict[str, object] = {"messages": self.messages}
        if self.session_id:
            payload["sessionId"] = self.session_id
        try:
            response = self.client.post("/api/chat", json=payload)
            data = response.json()
        except (httpx.HTTPError, ValueError):
            reply = ERROR_REPLY
        else:
            self.session_id = data.get("sessionId") or self.session_id
            reply = data.get("message") or data.get("error") or ERROR_REPLY

        self.messages.append({"role": "assistant", "content": reply})
        return reply


def run_chat_session(
    surface: ChatSurface,
    read: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
) -> None:
    if surface.messages:
        write(surface.messages[0]["content"])
    while True:
        try:
            user_input = read("> ").strip()
        except (EOFError, KeyboardInterrupt):
            write("")
            break
        if user_input.lower() in EXIT_WORDS:
            break
        if not user_input:
            continue
        write(surface.send(user_input))


def main() -> None:
    base_url = sys.argv[1] if len(sys.argv) > 1 else os.getenv("CHAT_API_URL", "http://127.0.0.1:8000")
    settings = get_settings()
    with httpx.Client(base_url=base_url, timeout=120.0) as client:
        run_chat_session(ChatSurface(client, welcome=settings.welcome_message))


if __name__ == "__main__":
    main()

# cardsync/notifier.py
"""Discord webhook digest for a finished sync.

Delivery is best effort: every failed message is logged and dropped, and
`send_digest` never raises to its caller.
"""
import time
from typing import List, Optional, Sequence

import requests

from .errors import NotificationError
from .schemas import ListingEntity
from .utils import logger

CHUNK_SIZE = 10
# Discord allows roughly 30 webhook calls a minute
CHUNK_DELAY_SECONDS = 2
MAX_MESSAGE_LENGTH = 2000
REQUEST_TIMEOUT = 15


def chunked(items: Sequence, size: int) -> List[Sequence]:
    return [items[i:i + size] for i in range(0, len(items), size)]

def format_summary(count: int, source_label: str) -> str:
    return f"✅ Sync completed: {count} cards from {source_label}"

def format_chunk(entities: Sequence[ListingEntity], number: int, total: int) -> str:
    header = f"📦 Cards {number}/{total}:\n\n"
    body = "\n\n".join(f"**{e.title}** - {e.price}\n{e.link}" for e in entities)
    return header + body

def _clamp(message: str) -> str:
    if len(message) <= MAX_MESSAGE_LENGTH:
        return message
    return message[:MAX_MESSAGE_LENGTH - 1] + "…"


class DiscordNotifier:
    def __init__(self, webhook_url: Optional[str], username: str = "Pokemon TCG Bot",
                 session: Optional[requests.Session] = None, sleep=time.sleep):
        self.webhook_url = webhook_url
        self.username = username
        self._session = session or requests.Session()
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings):
        return cls(settings.discord_webhook_url, username=settings.discord_username)

    def send_digest(self, entities: Sequence[ListingEntity], source_label: str) -> int:
        """Post the summary and the card chunks; return how many cards got through."""
        if not self.webhook_url:
            logger.warning("Discord webhook URL is not configured; skipping digest of %d cards", len(entities))
            return 0
        self._send(format_summary(len(entities), source_label))
        chunks = chunked(list(entities), CHUNK_SIZE)
        delivered = 0
        for index, chunk in enumerate(chunks):
            if self._send(format_chunk(chunk, index + 1, len(chunks))):
                delivered += len(chunk)
            if index < len(chunks) - 1:
                self._sleep(CHUNK_DELAY_SECONDS)
        return delivered

    def _send(self, message: str) -> bool:
        try:
            self._post(_clamp(message))
        except (requests.RequestException, NotificationError) as e:
            logger.error("Failed to send Discord notification: %s", e)
            return False
        except Exception:
            logger.exception("Unexpected error sending Discord notification")
            return False
        return True

    def _post(self, content: str) -> None:
        resp = self._session.post(
            self.webhook_url,
            json={"content": content, "username": self.username},
            timeout=REQUEST_TIMEOUT,
        )
        if not 200 <= resp.status_code < 300:
            raise NotificationError(f"Discord webhook failed: {resp.status_code} {resp.reason}")

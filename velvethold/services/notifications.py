"""Collaborators informed of lifecycle transitions."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from supabase import Client

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    REQUEST_RECEIVED = "request_received"
    REQUEST_APPROVED = "request_approved"
    REQUEST_DECLINED = "request_declined"
    DATE_PROPOSED = "date_proposed"
    DATE_CONFIRMED = "date_confirmed"
    DEPOSIT_REFUNDED = "deposit_refunded"
    DEPOSIT_RELEASED = "deposit_released"


class Notifier(ABC):
    """Delivery of user-facing notifications (push, email, in-app)."""

    @abstractmethod
    async def notify(
        self, user_id: str, event_type: NotificationType, payload: Dict[str, Any]
    ) -> None:
        ...


class LoggingNotifier(Notifier):
    """Writes notifications to the log instead of delivering them."""

    async def notify(
        self, user_id: str, event_type: NotificationType, payload: Dict[str, Any]
    ) -> None:
        logger.info(f"Notify {user_id}: {event_type.value} {payload}")


class ChatOpener(ABC):
    """Opens the chat between both parties once a request is approved."""

    @abstractmethod
    async def open_chat(self, request_id: str) -> None:
        ...


class SupabaseChatOpener(ChatOpener):
    """Inserts the chat row for a request; one chat per request."""

    def __init__(self, client: Client):
        self._client = client

    async def open_chat(self, request_id: str) -> None:
        self._client.table("chats").upsert(
            {
                "request_id": request_id,
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
            on_conflict="request_id",
            ignore_duplicates=True,
        ).execute()

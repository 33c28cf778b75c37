from __future__ import annotations

from typing import List, Optional
import logging

from ..domain.chat_models import MessageOut
from ..errors import InvalidRequestError, StoreError
from ..infrastructure.conversation_store import ConversationStore


logger = logging.getLogger("chatrelay.history")


class HistoryService:
    def __init__(self, store: ConversationStore) -> None:
        self._store = store

    async def get_history(self, user_id: Optional[str]) -> List[MessageOut]:
        """Return every message of the user's thread, oldest first.

        An unknown user has no thread yet and gets an empty list. Store faults
        are raised as :class:`StoreError` and never yield partial results.
        """
        if not user_id or not user_id.strip():
            raise InvalidRequestError("Missing user UID")
        try:
            thread = await self._store.find_thread_by_identity(user_id)
            if thread is None:
                return []
            messages = await self._store.list_messages(thread.thread_id)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError("History lookup failed") from exc
        history = [MessageOut.from_message(m) for m in messages]
        logger.info("history_sent", extra={"uid": user_id, "count": len(history)})
        return history

"""Per-user bounded, expiring conversation log."""

import asyncio
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from shared.helper.HelperConfig import HelperConfig
from shared.helper.snapshot import read_snapshot, write_snapshot
from shared.models.conversation import Conversation, ConversationMessage, utcnow
from shared.models.errors import StoreCorruption


class ConversationStore:
    """Keeps the most recent messages of each user.

    Appends for one user are serialised by a per-user asyncio.Lock; different
    users never wait on each other. The expiry sweep skips users whose lock is
    held and re-checks the activity time under the lock, so a concurrent
    append always wins over expiry.
    """

    def __init__(self, helper_config: HelperConfig, path: str | None = None):
        self.logging = helper_config.get_logger()
        self.max_messages = max(1, int(helper_config.get_number_val("CONVERSATION_MAX_MESSAGES", default=20)))
        self.max_content_chars = int(helper_config.get_number_val("CONVERSATION_MAX_CONTENT_CHARS", default=1000))
        self.path = path or helper_config.get_string_val("CONVERSATION_STORE_PATH", default="") or None

        self._conversations: dict[str, Conversation] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._persist_lock = asyncio.Lock()
        if self.path:
            self._load()

    ##########################################
    ############## PERSISTENCE ###############
    ##########################################

    def _load(self) -> None:
        """Load persisted conversations.

        Raises:
            StoreCorruption: If the file cannot be decoded into conversations.
        """
        data = read_snapshot(self.path)
        if data is None:
            return
        if not isinstance(data, dict) or not isinstance(data.get("conversations"), list):
            raise StoreCorruption(self.path, "missing 'conversations' list")
        for raw in data["conversations"]:
            try:
                conversation = Conversation.model_validate(raw)
            except ValidationError as exc:
                raise StoreCorruption(self.path, f"invalid conversation: {exc.errors()[0].get('msg')}")
            self._conversations[conversation.user_id] = conversation
        self.logging.info("Loaded %d conversations from '%s'.", len(self._conversations), self.path)

    async def _persist(self) -> None:
        if not self.path:
            return
        async with self._persist_lock:
            payload = {"conversations": [c.model_dump(mode="json") for c in list(self._conversations.values())]}
            await asyncio.to_thread(write_snapshot, self.path, payload)

    ##########################################
    ################ LOCKING #################
    ##########################################

    async def _acquire(self, user_id: str) -> asyncio.Lock:
        """Acquire the lock of a user, retrying if it was retired while waiting."""
        while True:
            lock = self._locks.setdefault(user_id, asyncio.Lock())
            await lock.acquire()
            if self._locks.get(user_id) is lock:
                return lock
            # the sweep dropped this lock while we waited for it
            lock.release()

    ##########################################
    ################ GETTER ##################
    ##########################################

    def load(self, user_id: str) -> list[ConversationMessage]:
        """Return a copy of a user's messages, oldest first (empty if none)."""
        conversation = self._conversations.get(user_id)
        if conversation is None:
            return []
        return [m.model_copy() for m in conversation.messages]

    def stats(self) -> dict:
        conversations = list(self._conversations.values())
        last_activity = max((c.last_activity_at for c in conversations), default=None)
        return {
            "active_conversations": len(conversations),
            "total_messages": sum(len(c.messages) for c in conversations),
            "last_activity_at": last_activity.isoformat() if last_activity else None,
        }

    ##########################################
    ############### MUTATION #################
    ##########################################

    def _truncate(self, message: ConversationMessage) -> ConversationMessage:
        if self.max_content_chars and len(message.content) > self.max_content_chars:
            return message.model_copy(update={"content": message.content[: self.max_content_chars] + "..."})
        return message

    async def append(self, user_id: str, message: ConversationMessage) -> None:
        """Append a message and keep only the most recent max_messages.

        Args:
            user_id (str): Owner of the conversation.
            message (ConversationMessage): The message to append.
        """
        lock = await self._acquire(user_id)
        try:
            conversation = self._conversations.get(user_id)
            if conversation is None:
                conversation = Conversation(user_id=user_id)
                self._conversations[user_id] = conversation
            messages = [*conversation.messages, self._truncate(message)]
            conversation.messages = messages[-self.max_messages:]
            conversation.last_activity_at = utcnow()
            await self._persist()
        finally:
            lock.release()

    async def clear(self, user_id: str) -> bool:
        """Delete a user's conversation.

        Returns:
            bool: True if a conversation existed.
        """
        lock = await self._acquire(user_id)
        try:
            existed = self._conversations.pop(user_id, None) is not None
            if existed:
                await self._persist()
            return existed
        finally:
            lock.release()

    async def purge_expired(self, ttl: timedelta | float) -> int:
        """Remove conversations idle for longer than ttl. Idempotent.

        Args:
            ttl (timedelta | float): Maximum idle time (seconds when a number).

        Returns:
            int: Number of conversations removed.
        """
        if not isinstance(ttl, timedelta):
            ttl = timedelta(seconds=float(ttl))
        cutoff = datetime.now(timezone.utc) - ttl

        purged = 0
        for user_id, conversation in list(self._conversations.items()):
            if conversation.last_activity_at >= cutoff:
                continue
            lock = self._locks.get(user_id)
            if lock is not None and lock.locked():
                # a write is in flight, it refreshes the activity time
                continue
            lock = await self._acquire(user_id)
            try:
                current = self._conversations.get(user_id)
                if current is None or current.last_activity_at >= cutoff:
                    continue
                del self._conversations[user_id]
                # retire the lock; waiters re-check and take a fresh one
                self._locks.pop(user_id, None)
                purged += 1
            finally:
                lock.release()

        # locks of users without a conversation are no longer needed
        for user_id, lock in list(self._locks.items()):
            if user_id not in self._conversations and not lock.locked():
                del self._locks[user_id]

        if purged:
            await self._persist()
            self.logging.info("Purged %d expired conversations.", purged)
        return purged

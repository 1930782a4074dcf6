from text2sql_chat.store.models import (
    ConversationState, Message, Mode, MUTABLE_MESSAGE_FIELDS, ROW_LIMIT_CHOICES,
)
from text2sql_chat.store.storage import Storage
from text2sql_chat.core.logging import get_logger
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional
import json
import threading

logger = get_logger(__name__)

STORAGE_KEY = "chat-storage"
STORAGE_VERSION = 0

Listener = Callable[[ConversationState], None]


class ChatStore:
    """Conversation state container: messages, conversation id, mode and row limit.

    Every mutation builds a new frozen ``ConversationState`` and swaps it in
    under a lock, so readers always see a whole snapshot. When a storage is
    given, the snapshot is restored on start and written after each mutation
    by a single background writer, so a slow storage never holds up a
    mutation. Writes land in mutation order; snapshots queued behind a
    running write collapse into the latest one.
    """

    def __init__(self, storage: Optional[Storage] = None, storage_key: str = STORAGE_KEY):
        self.storage = storage
        self.storage_key = storage_key
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._pending: Optional[ConversationState] = None
        self._write_scheduled = False
        self._writer: Optional[ThreadPoolExecutor] = None
        if storage is not None:
            self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chat-store-writer")
        self._state = self._restore()

    # ==============================================================
    # 📖 Readers
    # ==============================================================
    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def messages(self) -> List[Message]:
        return list(self._state.messages)

    @property
    def conversation_id(self) -> Optional[str]:
        return self._state.conversation_id

    @property
    def mode(self) -> Mode:
        return self._state.mode

    @property
    def limit(self) -> int:
        return self._state.limit

    def get_message(self, message_id: str) -> Optional[Message]:
        for message in self._state.messages:
            if message.id == message_id:
                return message
        return None

    # ==============================================================
    # ✏️ Mutations
    # ==============================================================
    def add_message(self, message: Message) -> None:
        self._apply(lambda s: s.model_copy(update={"messages": [*s.messages, message]}))

    def update_message(self, message_id: str, **patch: Any) -> Optional[Message]:
        """Merge ``patch`` into the first message with ``message_id``.

        Only ``results``, ``run_error`` and ``results_limit`` may be patched.
        Unknown ids are ignored and ``None`` is returned.
        """
        illegal = set(patch) - MUTABLE_MESSAGE_FIELDS
        if illegal:
            raise ValueError(f"Message fields are immutable: {', '.join(sorted(illegal))}")

        with self._lock:
            state = self._state
            for index, message in enumerate(state.messages):
                if message.id == message_id:
                    break
            else:
                logger.debug(f"update_message ignored, no message with id={message_id}")
                return None

            updated = message.model_copy(update=patch)
            messages = list(state.messages)
            messages[index] = updated
            self._swap(state.model_copy(update={"messages": messages}))
            new_state = self._state
        self._notify(new_state)
        return updated

    def set_conversation_id(self, conversation_id: Optional[str]) -> None:
        self._apply(lambda s: s.model_copy(update={"conversation_id": conversation_id}))

    def set_mode(self, mode: Mode) -> None:
        if mode not in ("conversational", "one-shot"):
            raise ValueError(f"Unknown mode: {mode}")
        self._apply(lambda s: s.model_copy(update={"mode": mode}))

    def set_limit(self, limit: int) -> None:
        if limit not in ROW_LIMIT_CHOICES:
            raise ValueError(f"Limit must be one of {list(ROW_LIMIT_CHOICES)}, got {limit}")
        self._apply(lambda s: s.model_copy(update={"limit": limit}))

    def clear_history(self) -> None:
        """Drop all messages and the conversation id; mode and limit are kept."""
        self._apply(lambda s: s.model_copy(update={"messages": [], "conversation_id": None}))
        logger.info("🧹 Cleared chat history")

    # ==============================================================
    # 🔔 Subscriptions
    # ==============================================================
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with the new state after every mutation."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ==============================================================
    # 💾 Persistence
    # ==============================================================
    def flush(self) -> None:
        """Block until every scheduled snapshot has been written."""
        writer = self._writer
        if writer is not None:
            writer.submit(lambda: None).result()

    def close(self) -> None:
        """Write what is pending and stop the background writer.

        Later mutations still apply in memory but are no longer persisted.
        """
        with self._lock:
            writer, self._writer = self._writer, None
        if writer is not None:
            writer.shutdown(wait=True)

    # ==============================================================
    # Internals
    # ==============================================================
    def _apply(self, change: Callable[[ConversationState], ConversationState]) -> None:
        with self._lock:
            self._swap(change(self._state))
            new_state = self._state
        self._notify(new_state)

    def _swap(self, new_state: ConversationState) -> None:
        # Caller holds the lock.
        self._state = new_state
        if self._writer is None:
            return
        self._pending = new_state
        if not self._write_scheduled:
            self._write_scheduled = True
            self._writer.submit(self._write_pending)

    def _notify(self, state: ConversationState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Chat store listener failed: {e}")

    def _write_pending(self) -> None:
        with self._lock:
            state = self._pending
            self._pending = None
            self._write_scheduled = False
        if state is not None:
            self._persist(state)

    def _persist(self, state: ConversationState) -> None:
        if self.storage is None:
            return
        try:
            blob = json.dumps({
                "state": state.model_dump(mode="json", by_alias=True),
                "version": STORAGE_VERSION,
            })
            self.storage.set_item(self.storage_key, blob)
        except Exception as e:
            logger.warning(f"Failed to persist chat state under '{self.storage_key}': {e}")

    def _restore(self) -> ConversationState:
        if self.storage is None:
            return ConversationState()
        try:
            blob = self.storage.get_item(self.storage_key)
            if not blob:
                return ConversationState()
            payload = json.loads(blob)
            state = ConversationState.model_validate(payload.get("state", {}))
            logger.info(f"Restored chat state: {len(state.messages)} messages")
            return state
        except Exception as e:
            logger.warning(f"Ignoring unreadable chat state under '{self.storage_key}': {e}")
            return ConversationState()

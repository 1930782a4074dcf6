from text2sql_chat.api.models import Text2SQLRequest, Text2SQLResponse
from text2sql_chat.client.text2sql_client import Text2SQLClient
from text2sql_chat.core.errors import MessageNotFoundError, RunInProgressError, Text2SQLError
from text2sql_chat.core.logging import get_logger
from text2sql_chat.store.chat_store import ChatStore
from text2sql_chat.store.models import LIMIT_CYCLE_OPTIONS, Message, Mode
from typing import Optional, Set
import time

logger = get_logger(__name__)

FALLBACK_CONTENT = "Generated SQL query"
ERROR_CONTENT = "Sorry, I encountered an error processing your request. Please try again."


class ChatService:
    """Chat turns and query re-runs on top of the conversation store."""

    def __init__(self, store: ChatStore, client: Text2SQLClient, connection_id: Optional[str] = None):
        self.store = store
        self.client = client
        self.connection_id = connection_id
        self._running: Set[str] = set()
        self._last_id = max((int(m.id) for m in store.messages if m.id.isdigit()), default=0)

    @property
    def is_loading(self) -> bool:
        return self.client.is_loading

    def is_running(self, message_id: str) -> bool:
        return message_id in self._running

    def _next_id(self) -> str:
        # Millisecond clock, bumped so ids stay unique and increasing.
        self._last_id = max(time.time_ns() // 1_000_000, self._last_id + 1)
        return str(self._last_id)

    def _build_request(self, prompt: str, run_query: bool, limit: int) -> Text2SQLRequest:
        state = self.store.state
        return Text2SQLRequest(
            prompt=prompt,
            run_query=run_query,
            limit=limit,
            conversation_id=state.conversation_id,
            mode=state.mode,
            connection_id=self.connection_id,
        )

    def _remember_conversation(self, response: Text2SQLResponse) -> None:
        if response.conversation_id:
            self.store.set_conversation_id(response.conversation_id)

    # ==============================================================
    # 💬 Chat turns
    # ==============================================================
    async def send_message(self, content: str) -> Optional[Message]:
        """Append the user turn, ask for SQL and append the assistant turn.

        Returns the assistant message, or ``None`` when the history was
        cleared while the request was in flight.
        """
        content = content.strip()
        if not content:
            raise ValueError("Message content is empty")

        user_message = Message(id=self._next_id(), content=content, role="user")
        self.store.add_message(user_message)
        limit = self.store.limit

        try:
            response = await self.client.generate_sql(
                self._build_request(content, run_query=False, limit=limit)
            )
        except Text2SQLError as e:
            logger.error(f"❌ Failed to generate SQL: {e}")
            if self.store.get_message(user_message.id) is None:
                return None
            error_message = Message(id=self._next_id(), content=ERROR_CONTENT, role="assistant")
            self.store.add_message(error_message)
            return error_message

        if self.store.get_message(user_message.id) is None:
            logger.info("History cleared while generating, dropping response")
            return None

        assistant_message = Message(
            id=self._next_id(),
            content=response.explanation or FALLBACK_CONTENT,
            role="assistant",
            sql=response.output or None,
            explanation=response.explanation,
            results=response.results,
            run_error=response.run_error,
            database_type=response.database_type,
            results_limit=limit if response.results is not None else None,
        )
        self.store.add_message(assistant_message)
        self._remember_conversation(response)

        logger.info(f"✅ Assistant turn added | sql={'yes' if assistant_message.sql else 'no'}")
        return assistant_message

    # ==============================================================
    # ▶️ Re-running generated SQL
    # ==============================================================
    async def rerun_with_limit(self, message_id: str, sql: str, limit: int) -> Optional[Message]:
        """Execute ``sql`` again with ``limit`` and patch the results into the message.

        The generation endpoint is the only way to run SQL, so the SQL is sent
        back as the prompt with ``runQuery`` on. The message is updated in
        place; no turn is added. One run per message at a time.
        """
        if message_id in self._running:
            raise RunInProgressError(message_id)
        self._running.add(message_id)
        try:
            logger.info(f"Running query for message={message_id} limit={limit}")
            response = await self.client.generate_sql(
                self._build_request(sql, run_query=True, limit=limit)
            )
            updated = self.store.update_message(
                message_id,
                results=response.results,
                run_error=response.run_error,
                results_limit=limit,
            )
            if updated is None:
                logger.info(f"Message {message_id} is gone, dropping run result")
                return None
            self._remember_conversation(response)
            return updated
        except Text2SQLError as e:
            logger.error(f"Failed to run query for message={message_id}: {e}")
            raise
        finally:
            self._running.discard(message_id)

    def _runnable(self, message_id: str) -> Message:
        message = self.store.get_message(message_id)
        if message is None or not message.sql:
            raise MessageNotFoundError(message_id)
        if message_id in self._running:
            raise RunInProgressError(message_id)
        return message

    async def run_query(self, message_id: str, limit: Optional[int] = None) -> Optional[Message]:
        """Run a message's SQL with ``limit`` or the conversation limit."""
        message = self._runnable(message_id)
        return await self.rerun_with_limit(message_id, message.sql, limit or self.store.limit)

    async def change_limit(self, message_id: str, limit: int) -> Optional[Message]:
        """Make ``limit`` the conversation limit and re-run the message with it."""
        message = self._runnable(message_id)
        self.store.set_limit(limit)
        return await self.rerun_with_limit(message_id, message.sql, limit)

    # ==============================================================
    # ⚙️ Preferences
    # ==============================================================
    def toggle_mode(self) -> Mode:
        mode: Mode = "one-shot" if self.store.mode == "conversational" else "conversational"
        self.store.set_mode(mode)
        return mode

    def cycle_limit(self) -> int:
        current = self.store.limit
        if current in LIMIT_CYCLE_OPTIONS:
            index = (LIMIT_CYCLE_OPTIONS.index(current) + 1) % len(LIMIT_CYCLE_OPTIONS)
        else:
            index = 0
        limit = LIMIT_CYCLE_OPTIONS[index]
        self.store.set_limit(limit)
        return limit

    def clear_history(self) -> None:
        self.store.clear_history()

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

Role = Literal["user", "assistant"]
Mode = Literal["conversational", "one-shot"]

# Cycling "N results" button in the message header
LIMIT_CYCLE_OPTIONS = (1, 5, 10, 25, 50, 100, 250)
# Selector shown under truncated result tables
RESULTS_LIMIT_OPTIONS = (100, 500, 1000, 5000)
ROW_LIMIT_CHOICES = tuple(sorted(set(LIMIT_CYCLE_OPTIONS) | set(RESULTS_LIMIT_OPTIONS)))

DEFAULT_MODE: Mode = "conversational"
DEFAULT_LIMIT = 100

# Fields a later run may overwrite; everything else is fixed at creation.
MUTABLE_MESSAGE_FIELDS = frozenset({"results", "run_error", "results_limit"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """One chat turn. Serialized with the camelCase names the UI and API use."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    content: str
    role: Role
    timestamp: datetime = Field(default_factory=utcnow)
    sql: Optional[str] = None
    explanation: Optional[str] = None
    results: Optional[List[Dict[str, Any]]] = None
    run_error: Optional[str] = Field(None, alias="runError")
    database_type: Optional[str] = Field(None, alias="databaseType")
    results_limit: Optional[int] = Field(None, alias="resultsLimit")

    @property
    def is_user(self) -> bool:
        return self.role == "user"


class ConversationState(BaseModel):
    """Whole conversation snapshot; replaced, never mutated."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    messages: List[Message] = Field(default_factory=list)
    conversation_id: Optional[str] = Field(None, alias="conversationId")
    mode: Mode = DEFAULT_MODE
    limit: int = DEFAULT_LIMIT

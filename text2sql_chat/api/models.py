from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Any, Dict, Optional
from text2sql_chat.store.models import Message, Mode, ROW_LIMIT_CHOICES


# ============================================================
# Text2SQL wire format (proxy <-> upstream <-> client)
# ============================================================
class Text2SQLRequest(BaseModel):
    """Generation request; fields the API adds later ride along as extras."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    prompt: str = Field(..., min_length=1, description="Natural language question or SQL to run")
    run_query: Optional[bool] = Field(None, alias="runQuery", description="Return result rows")
    limit: Optional[int] = Field(None, gt=0, description="Row cap for executed queries")
    conversation_id: Optional[str] = Field(None, alias="conversationID")
    mode: Optional[Mode] = None
    connection_id: Optional[str] = Field(None, alias="connectionID")

    def to_payload(self) -> Dict[str, Any]:
        """JSON body with the fields the caller set, extras included."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Text2SQLResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    output: Optional[str] = None
    explanation: str = ""
    results: Optional[List[Dict[str, Any]]] = None
    run_error: Optional[str] = Field(None, alias="runError")
    conversation_id: Optional[str] = Field(None, alias="conversationID")
    database_type: Optional[str] = Field(None, alias="databaseType")

    @field_validator("explanation", mode="before")
    @classmethod
    def _none_explanation(cls, value):
        return "" if value is None else value


class ErrorResponse(BaseModel):
    error: str


# ============================================================
# Chat API
# ============================================================
class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, description="User prompt")


class RunQueryRequest(BaseModel):
    limit: Optional[int] = Field(None, description="Row limit; defaults to the conversation limit")

    @field_validator("limit")
    @classmethod
    def _known_limit(cls, value):
        if value is not None and value not in ROW_LIMIT_CHOICES:
            raise ValueError(f"limit must be one of {list(ROW_LIMIT_CHOICES)}")
        return value


class ModeRequest(BaseModel):
    mode: Mode


class LimitRequest(BaseModel):
    limit: int

    @field_validator("limit")
    @classmethod
    def _known_limit(cls, value):
        if value not in ROW_LIMIT_CHOICES:
            raise ValueError(f"limit must be one of {list(ROW_LIMIT_CHOICES)}")
        return value


class MessageResponse(BaseModel):
    message: Message
    running: bool = False


class HealthResponse(BaseModel):
    status: str
    upstream: str
    api_key_configured: bool

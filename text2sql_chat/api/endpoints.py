from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from typing import Optional
from text2sql_chat.api.deps import get_chat_service
from text2sql_chat.api.models import (
    LimitRequest, MessageResponse, ModeRequest, RunQueryRequest, SendMessageRequest,
)
from text2sql_chat.core.errors import (
    ApiError, MessageNotFoundError, NetworkError, RunInProgressError,
)
from text2sql_chat.core.logging import get_logger
from text2sql_chat.services.chat_service import ChatService
from text2sql_chat.store.models import ConversationState, Message
from text2sql_chat.ui.results_table import CSV_FILENAME, infer_columns, to_csv

logger = get_logger(__name__)
router = APIRouter(prefix="/api/chat", tags=["Chat"])


def _message_response(chat: ChatService, message: Message) -> MessageResponse:
    return MessageResponse(message=message, running=chat.is_running(message.id))


def _get_message(chat: ChatService, message_id: str) -> Message:
    message = chat.store.get_message(message_id)
    if message is None:
        raise HTTPException(status_code=404, detail=f"Message '{message_id}' not found")
    return message


async def _run(chat: ChatService, message_id: str, run) -> MessageResponse:
    try:
        message = await run
    except MessageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (NetworkError, ApiError) as e:
        raise HTTPException(status_code=502, detail=str(e))

    if message is None:
        # Cleared while running
        raise HTTPException(status_code=404, detail=f"Message '{message_id}' not found")
    return _message_response(chat, message)


# ==============================================================
# 💬 Conversation
# ==============================================================
@router.get("/state", response_model=ConversationState)
async def get_state(chat: ChatService = Depends(get_chat_service)):
    """Return the whole conversation: messages, conversation id, mode and limit."""
    return chat.store.state


@router.post("/messages", response_model=MessageResponse)
async def send_message(request: SendMessageRequest, chat: ChatService = Depends(get_chat_service)):
    """Add a user turn and the generated assistant turn."""
    content = request.content.strip()
    if not content:
        raise HTTPException(status_code=422, detail="Message content is empty")

    logger.info("Processing chat message")
    message = await chat.send_message(content)
    if message is None:
        raise HTTPException(status_code=409, detail="Conversation was cleared while generating")
    return _message_response(chat, message)


@router.post("/messages/{message_id}/run", response_model=MessageResponse)
async def run_message(
    message_id: str,
    request: Optional[RunQueryRequest] = None,
    chat: ChatService = Depends(get_chat_service),
):
    """Execute a message's SQL again; results replace the message's previous ones."""
    limit = request.limit if request else None
    return await _run(chat, message_id, chat.run_query(message_id, limit))


@router.post("/messages/{message_id}/limit", response_model=MessageResponse)
async def change_message_limit(
    message_id: str,
    request: LimitRequest,
    chat: ChatService = Depends(get_chat_service),
):
    """Adopt a new row limit and re-run the message with it."""
    return await _run(chat, message_id, chat.change_limit(message_id, request.limit))


@router.get("/messages/{message_id}/results.csv")
async def export_results_csv(message_id: str, chat: ChatService = Depends(get_chat_service)):
    message = _get_message(chat, message_id)
    if message.results is None:
        raise HTTPException(status_code=404, detail=f"Message '{message_id}' has no results")

    csv_text = to_csv(message.results, infer_columns(message.results))
    return Response(
        content=csv_text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'},
    )


@router.delete("/history", response_model=ConversationState)
async def clear_history(chat: ChatService = Depends(get_chat_service)):
    chat.clear_history()
    return chat.store.state


# ==============================================================
# ⚙️ Preferences
# ==============================================================
@router.put("/mode", response_model=ConversationState)
async def set_mode(request: ModeRequest, chat: ChatService = Depends(get_chat_service)):
    chat.store.set_mode(request.mode)
    return chat.store.state


@router.post("/mode/toggle", response_model=ConversationState)
async def toggle_mode(chat: ChatService = Depends(get_chat_service)):
    chat.toggle_mode()
    return chat.store.state


@router.put("/limit", response_model=ConversationState)
async def set_limit(request: LimitRequest, chat: ChatService = Depends(get_chat_service)):
    chat.store.set_limit(request.limit)
    return chat.store.state


@router.post("/limit/cycle", response_model=ConversationState)
async def cycle_limit(chat: ChatService = Depends(get_chat_service)):
    chat.cycle_limit()
    return chat.store.state

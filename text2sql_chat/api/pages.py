from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse
from text2sql_chat.api.deps import get_chat_service
from text2sql_chat.services.chat_service import ChatService
from text2sql_chat.ui.message_renderer import MessageVariant
from text2sql_chat.ui.page import render_chat_page, render_results_page
from text2sql_chat.ui.results_table import build_results_table

router = APIRouter(prefix="/chat", tags=["Pages"])


@router.get("", response_class=HTMLResponse)
async def chat_page(
    variant: MessageVariant = MessageVariant.INTERACTIVE,
    chat: ChatService = Depends(get_chat_service),
):
    """Render the conversation with the input form."""
    state = chat.store.state
    running = {m.id for m in state.messages if chat.is_running(m.id)}
    return render_chat_page(state, running=running, is_loading=chat.is_loading, variant=variant)


@router.get("/messages/{message_id}/results", response_class=HTMLResponse)
async def results_page(
    message_id: str,
    page: int = 1,
    chat: ChatService = Depends(get_chat_service),
):
    """Full-screen, paged view of one message's result rows."""
    message = chat.store.get_message(message_id)
    if message is None or message.results is None:
        raise HTTPException(status_code=404, detail=f"No results for message '{message_id}'")

    view = build_results_table(message.results, message.results_limit or chat.store.limit, page=page)
    return render_results_page(message, view)

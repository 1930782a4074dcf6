from html import escape
from typing import Container

from text2sql_chat.store.models import ConversationState, Message
from text2sql_chat.ui.message_renderer import MessageVariant, render_message
from text2sql_chat.ui.results_table import ResultsTableView, render_results_table

MODE_LABELS = {
    "conversational": "Conversational",
    "one-shot": "One-Shot",
}
MODE_TOOLTIPS = {
    "conversational": "Conversational mode: Allows clarifying questions when the request is ambiguous",
    "one-shot": "One-shot mode: Immediate SQL generation",
}

_STYLE = """
body { margin: 0; font-family: system-ui, sans-serif; background: #0b0b12; color: #e5e7eb; }
header { display: flex; justify-content: space-between; padding: 12px 16px; border-bottom: 1px solid #ffffff1a; }
header a { color: #d1d5db; margin-left: 12px; text-decoration: none; }
main { max-width: 56rem; margin: 0 auto; padding: 16px; }
.message { margin: 12px 0; padding: 12px 16px; border-radius: 8px; background: #ffffff0d; }
.message.user { background: #9333ea33; margin-left: 20%; }
.sql-header, .results-header { display: flex; justify-content: space-between; font-size: 13px; margin: 8px 0; }
pre.sql { background: #111827; padding: 12px; border-radius: 6px; overflow-x: auto; }
.btn-ghost, .btn { background: none; border: 1px solid #374151; color: #9ca3af; border-radius: 4px;
  padding: 2px 8px; margin-left: 6px; cursor: pointer; font-size: 12px; text-decoration: none; }
.btn-ghost:disabled { opacity: .5; cursor: default; }
.results { border: 1px solid #374151; border-radius: 8px; padding: 8px; overflow-x: auto; }
.results-table { border-collapse: collapse; width: 100%; font-size: 13px; }
.results-table th, .results-table td { text-align: left; padding: 4px 12px; max-width: 250px;
  overflow: hidden; text-overflow: ellipsis; white-space: nowrap; border-top: 1px solid #1f2937; }
.results-limited, .results-pager { display: flex; justify-content: space-between; font-size: 12px;
  color: #9ca3af; padding-top: 8px; }
.query-error { margin-top: 8px; }
.query-error-title { color: #f87171; font-size: 13px; }
.query-error pre { background: #7f1d1d33; border: 1px solid #ef44444d; padding: 8px; color: #fca5a5; }
form textarea { width: 100%; min-height: 60px; background: #ffffff0d; color: #fff; border: 1px solid #ffffff33; }
.toolbar { display: flex; justify-content: space-between; font-size: 12px; color: #9ca3af; margin-top: 6px; }
"""

_SCRIPT = """
async function call(method, url, body) {
  const response = await fetch(url, {
    method: method,
    headers: { 'Content-Type': 'application/json' },
    body: body === undefined ? undefined : JSON.stringify(body),
  });
  if (!response.ok) {
    const data = await response.json().catch(() => ({}));
    alert(data.detail || data.error || ('Request failed: ' + response.status));
  }
  location.reload();
}
document.addEventListener('click', (event) => {
  const el = event.target.closest('[data-action]');
  if (!el || el.disabled) return;
  const id = el.dataset.messageId;
  switch (el.dataset.action) {
    case 'run':
      el.disabled = true;
      el.textContent = 'Running...';
      call('POST', '/api/chat/messages/' + id + '/run', {});
      break;
    case 'cycle-limit': call('POST', '/api/chat/limit/cycle'); break;
    case 'toggle-mode': call('POST', '/api/chat/mode/toggle'); break;
    case 'clear-history': call('DELETE', '/api/chat/history'); break;
    case 'copy':
      navigator.clipboard.writeText(el.dataset.sql).then(() => {
        el.textContent = 'Copied!';
        setTimeout(() => { el.textContent = 'Copy'; }, 2000);
      });
      break;
  }
});
document.addEventListener('change', (event) => {
  const el = event.target;
  if (el.dataset.action === 'change-limit' && el.value) {
    el.disabled = true;
    call('POST', '/api/chat/messages/' + el.dataset.messageId + '/limit', { limit: Number(el.value) });
  }
});
document.addEventListener('DOMContentLoaded', () => {
  const form = document.getElementById('chat-form');
  if (!form) return;
  const input = form.querySelector('textarea');
  form.addEventListener('submit', (event) => {
    event.preventDefault();
    const content = input.value.trim();
    if (!content) return;
    input.disabled = true;
    call('POST', '/api/chat/messages', { content: content });
  });
  input.addEventListener('keydown', (event) => {
    if (event.key === 'Enter' && !event.shiftKey) {
      event.preventDefault();
      form.requestSubmit();
    }
  });
  const last = document.querySelector('.message:last-of-type');
  if (last) last.scrollIntoView({ block: 'end' });
});
"""


def _layout(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html lang='en'><head><meta charset='utf-8'>"
        "<meta name='viewport' content='width=device-width, initial-scale=1'>"
        f"<title>{escape(title)}</title><style>{_STYLE}</style></head><body>"
        "<header><span><strong>Text2SQL.ai</strong> Chat Demo</span><nav>"
        "<a href='https://www.text2sql.ai/docs/api-integration#generate-sql' target='_blank'>API Docs</a>"
        "<a href='https://github.com/text2sql-ai/chat-demo' target='_blank'>GitHub</a>"
        f"</nav></header><main>{body}</main><script>{_SCRIPT}</script></body></html>"
    )


def _chat_input(state: ConversationState, is_loading: bool) -> str:
    disabled = " disabled" if is_loading else ""
    return (
        "<form id='chat-form'>"
        f"<textarea name='content' placeholder='Ask me to generate SQL queries...'{disabled}></textarea>"
        f"<button type='submit' class='btn'{disabled}>Send</button></form>"
        "<div class='toolbar'><span>Press Enter to send, Shift+Enter for new line</span><span>"
        f"<button type='button' class='btn-ghost' data-action='toggle-mode' "
        f"title='{escape(MODE_TOOLTIPS[state.mode])}'>{MODE_LABELS[state.mode]}</button>"
        "<button type='button' class='btn-ghost' data-action='clear-history' title='Clear history'>"
        "Clear history</button></span></div>"
    )


def render_chat_page(
    state: ConversationState,
    running: Container[str] = (),
    is_loading: bool = False,
    variant: MessageVariant = MessageVariant.INTERACTIVE,
) -> str:
    messages = "".join(
        render_message(message, state.limit, running=message.id in running, variant=variant)
        for message in state.messages
    )
    if not messages:
        messages = "<p class='empty'>Ask a question about your data to get started.</p>"
    body = f"<section class='messages'>{messages}</section>{_chat_input(state, is_loading)}"
    return _layout("Text2SQL Chat", body)


def render_results_page(message: Message, view: ResultsTableView) -> str:
    body = (
        "<p><a href='/chat'>&larr; Back to chat</a></p><h2>Query Results</h2>"
        + render_results_table(view, message.id, full_screen=True)
    )
    return _layout("Query Results", body)

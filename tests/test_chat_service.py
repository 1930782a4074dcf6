import asyncio
import pytest

from text2sql_chat.api.models import Text2SQLResponse
from text2sql_chat.core.errors import ApiError, MessageNotFoundError, NetworkError, RunInProgressError
from text2sql_chat.services.chat_service import ERROR_CONTENT, FALLBACK_CONTENT, ChatService
from text2sql_chat.store.models import Message
from fakes import FakeClient


def response(**fields) -> Text2SQLResponse:
    fields.setdefault("conversationID", "conv-1")
    return Text2SQLResponse.model_validate(fields)


def add_sql_message(store, message_id="100", sql="SELECT 1", **fields) -> Message:
    message = Message(id=message_id, content="Selects one", role="assistant", sql=sql, **fields)
    store.add_message(message)
    return message


# ==============================================================
# send_message
# ==============================================================
@pytest.mark.asyncio
async def test_send_message_adds_user_and_assistant_turns(store):
    client = FakeClient(response(output="SELECT * FROM users", explanation="All users", databaseType="mysql"))
    chat = ChatService(store, client, connection_id="conn-1")
    store.set_mode("one-shot")

    assistant = await chat.send_message("  show me users  ")

    user, stored_assistant = store.messages
    assert user.role == "user"
    assert user.content == "show me users"
    assert stored_assistant == assistant
    assert assistant.sql == "SELECT * FROM users"
    assert assistant.content == "All users"
    assert assistant.database_type == "mysql"
    assert assistant.results is None
    assert int(assistant.id) > int(user.id)
    assert store.conversation_id == "conv-1"

    request = client.requests[0]
    assert request.prompt == "show me users"
    assert request.run_query is False
    assert request.limit == 100
    assert request.mode == "one-shot"
    assert request.conversation_id is None
    assert request.connection_id == "conn-1"


@pytest.mark.asyncio
async def test_follow_up_echoes_conversation_id(store):
    client = FakeClient(
        response(output="SELECT 1", explanation="one", conversationID="conv-7"),
        response(output="SELECT 2", explanation="two", conversationID="conv-7"),
    )
    chat = ChatService(store, client)

    await chat.send_message("first")
    await chat.send_message("second")

    assert client.requests[1].conversation_id == "conv-7"
    assert len(store.messages) == 4


@pytest.mark.asyncio
async def test_send_message_without_sql_uses_fallbacks(store):
    chat = ChatService(store, FakeClient(response(output=None, explanation="")))

    assistant = await chat.send_message("hmm")

    assert assistant.sql is None
    assert assistant.content == FALLBACK_CONTENT


@pytest.mark.asyncio
async def test_send_message_records_results_limit(store):
    chat = ChatService(store, FakeClient(response(output="SELECT 1", explanation="x", results=[{"a": 1}])))
    store.set_limit(25)

    assistant = await chat.send_message("q")

    assert assistant.results == [{"a": 1}]
    assert assistant.results_limit == 25


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [NetworkError("down"), ApiError("bad", status_code=500)])
async def test_send_message_failure_adds_error_turn(store, error):
    chat = ChatService(store, FakeClient(error))

    assistant = await chat.send_message("q")

    assert assistant.content == ERROR_CONTENT
    assert assistant.sql is None
    assert [m.role for m in store.messages] == ["user", "assistant"]
    assert store.conversation_id is None


@pytest.mark.asyncio
async def test_send_empty_message_is_rejected(store):
    chat = ChatService(store, FakeClient())

    with pytest.raises(ValueError):
        await chat.send_message("   ")
    assert store.messages == []


@pytest.mark.asyncio
async def test_response_after_clear_history_is_dropped(store):
    class ClearingClient(FakeClient):
        async def generate_sql(self, request):
            store.clear_history()
            return await super().generate_sql(request)

    chat = ChatService(store, ClearingClient(response(output="SELECT 1", explanation="x", conversationID="old")))

    assert await chat.send_message("q") is None
    assert store.messages == []
    assert store.conversation_id is None


# ==============================================================
# Re-run workflow
# ==============================================================
@pytest.mark.asyncio
async def test_rerun_updates_same_message(store):
    add_sql_message(store)
    store.set_conversation_id("conv-1")
    client = FakeClient(response(output="SELECT 1", explanation="", results=[{"?column?": 1}]))
    chat = ChatService(store, client)

    updated = await chat.rerun_with_limit("100", "SELECT 1", 500)

    request = client.requests[0]
    assert request.prompt == "SELECT 1"
    assert request.limit == 500
    assert request.run_query is True
    assert request.conversation_id == "conv-1"
    assert request.mode == "conversational"

    assert len(store.messages) == 1
    assert updated.id == "100"
    assert updated.results == [{"?column?": 1}]
    assert updated.results_limit == 500
    assert updated.content == "Selects one"


@pytest.mark.asyncio
async def test_rerun_replaces_previous_results_with_error(store):
    add_sql_message(store, results=[{"a": 1}])
    chat = ChatService(store, FakeClient(response(runError='relation "x" does not exist')))

    updated = await chat.rerun_with_limit("100", "SELECT 1", 100)

    assert updated.results is None
    assert updated.run_error == 'relation "x" does not exist'


@pytest.mark.asyncio
async def test_rerun_stores_new_conversation_id(store):
    add_sql_message(store)
    store.set_conversation_id("conv-1")
    chat = ChatService(store, FakeClient(response(results=[], conversationID="conv-2")))

    await chat.rerun_with_limit("100", "SELECT 1", 100)

    assert store.conversation_id == "conv-2"


@pytest.mark.asyncio
async def test_run_query_uses_store_limit(store):
    add_sql_message(store, sql="SELECT name FROM users")
    store.set_limit(250)
    client = FakeClient(response(results=[]))
    chat = ChatService(store, client)

    await chat.run_query("100")

    assert client.requests[0].prompt == "SELECT name FROM users"
    assert client.requests[0].limit == 250


@pytest.mark.asyncio
async def test_change_limit_sets_preference_and_reruns(store):
    add_sql_message(store)
    client = FakeClient(response(results=[{"a": 1}]))
    chat = ChatService(store, client)

    updated = await chat.change_limit("100", 1000)

    assert store.limit == 1000
    assert client.requests[0].limit == 1000
    assert updated.results_limit == 1000


@pytest.mark.asyncio
async def test_run_unknown_or_sql_less_message(store):
    store.add_message(Message(id="1", content="hi", role="user"))
    chat = ChatService(store, FakeClient())

    with pytest.raises(MessageNotFoundError):
        await chat.run_query("missing")
    with pytest.raises(MessageNotFoundError):
        await chat.run_query("1")


@pytest.mark.asyncio
async def test_only_one_run_per_message_in_flight(store):
    add_sql_message(store, message_id="100")
    add_sql_message(store, message_id="200", sql="SELECT 2")
    release = asyncio.Event()

    class SlowClient(FakeClient):
        async def generate_sql(self, request):
            await release.wait()
            return await super().generate_sql(request)

    client = SlowClient(response(results=[{"n": 1}]), response(results=[{"n": 2}]))
    chat = ChatService(store, client)

    first = asyncio.create_task(chat.run_query("100"))
    other = asyncio.create_task(chat.run_query("200"))
    await asyncio.sleep(0)

    assert chat.is_running("100")
    with pytest.raises(RunInProgressError):
        await chat.run_query("100")
    with pytest.raises(RunInProgressError):
        await chat.rerun_with_limit("100", "SELECT 1", 5)

    release.set()
    await asyncio.gather(first, other)

    assert not chat.is_running("100")
    assert {m.id: m.results[0]["n"] for m in store.messages} in ({"100": 1, "200": 2}, {"100": 2, "200": 1})
    assert len(client.requests) == 2


@pytest.mark.asyncio
async def test_failed_rerun_propagates_and_releases_message(store):
    add_sql_message(store, results=[{"a": 1}])
    chat = ChatService(store, FakeClient(NetworkError("down"), response(results=[])))

    with pytest.raises(NetworkError):
        await chat.run_query("100")

    assert store.get_message("100").results == [{"a": 1}]
    assert not chat.is_running("100")
    await chat.run_query("100")
    assert store.get_message("100").results == []


@pytest.mark.asyncio
async def test_rerun_after_message_cleared_is_noop(store):
    add_sql_message(store)

    class ClearingClient(FakeClient):
        async def generate_sql(self, request):
            store.clear_history()
            return await super().generate_sql(request)

    chat = ChatService(store, ClearingClient(response(results=[], conversationID="late")))

    assert await chat.rerun_with_limit("100", "SELECT 1", 100) is None
    assert store.messages == []
    assert store.conversation_id is None


# ==============================================================
# Preferences
# ==============================================================
def test_toggle_mode(store):
    chat = ChatService(store, FakeClient())

    assert chat.toggle_mode() == "one-shot"
    assert chat.toggle_mode() == "conversational"
    assert store.mode == "conversational"


def test_cycle_limit_wraps(store):
    chat = ChatService(store, FakeClient())

    assert chat.cycle_limit() == 250
    assert chat.cycle_limit() == 1
    assert chat.cycle_limit() == 5


def test_cycle_limit_from_table_only_value(store):
    store.set_limit(5000)
    chat = ChatService(store, FakeClient())

    assert chat.cycle_limit() == 1


def test_ids_continue_after_restored_history(store):
    store.add_message(Message(id="99999999999999", content="old", role="user"))
    chat = ChatService(store, FakeClient())

    assert int(chat._next_id()) > 99999999999999

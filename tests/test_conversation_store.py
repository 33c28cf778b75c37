import pytest

from src.chatrelay.config import RelaySettings
from src.chatrelay.domain.chat_models import MessageCreate, Thread
from src.chatrelay.errors import StoreError
from src.chatrelay.infrastructure import conversation_store


@pytest.fixture
def store():
    return conversation_store.InMemoryConversationStore()


@pytest.mark.asyncio
async def test_find_thread_returns_none_for_unknown_identity(store):
    assert await store.find_thread_by_identity("nobody") is None


@pytest.mark.asyncio
async def test_create_thread_defaults_status_and_is_findable(store):
    thread = await store.create_thread("u1", "a@b.com")
    assert thread.status == "assistant_active"
    assert thread.user_email == "a@b.com"
    assert thread.created_at == thread.last_message_at

    found = await store.find_thread_by_identity("u1")
    assert found == thread


@pytest.mark.asyncio
async def test_create_thread_twice_keeps_single_thread(store):
    first = await store.create_thread("u1", "a@b.com")
    second = await store.create_thread("u1", "other@b.com")
    assert second.thread_id == first.thread_id
    assert second.user_email == "a@b.com"
    assert await store.count_threads() == 1


@pytest.mark.asyncio
async def test_touch_thread_advances_last_activity(store):
    thread = await store.create_thread("u1", "a@b.com")
    touched = await store.touch_thread(thread)
    assert touched.last_message_at > thread.last_message_at
    assert touched.updated_at == touched.last_message_at
    assert touched.created_at == thread.created_at


@pytest.mark.asyncio
async def test_touch_unknown_thread_raises(store):
    ghost = Thread(
        thread_id="ghost",
        user_id="u9",
        user_email="x@y.z",
        last_message_at="2024-01-01T00:00:00.000000Z",
        created_at="2024-01-01T00:00:00.000000Z",
        updated_at="2024-01-01T00:00:00.000000Z",
    )
    with pytest.raises(StoreError):
        await store.touch_thread(ghost)


@pytest.mark.asyncio
async def test_append_message_to_unknown_thread_raises(store):
    with pytest.raises(StoreError):
        await store.append_message("ghost", MessageCreate(content="hi", sender_type="user", sender_name="Guest"))


@pytest.mark.asyncio
async def test_messages_listed_in_strict_creation_order(store):
    thread = await store.create_thread("u1", "a@b.com")
    for index in range(5):
        await store.append_message(
            thread.thread_id,
            MessageCreate(content=f"msg {index}", sender_type="user", sender_name="Guest", sender_uid="u1"),
        )
    messages = await store.list_messages(thread.thread_id)
    assert [m.content for m in messages] == [f"msg {i}" for i in range(5)]
    stamps = [m.created_at for m in messages]
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == len(stamps)


@pytest.mark.asyncio
async def test_sender_uid_only_kept_for_user_messages(store):
    thread = await store.create_thread("u1", "a@b.com")
    user_msg = await store.append_message(
        thread.thread_id,
        MessageCreate(content="hello", sender_type="user", sender_name="Ann", sender_uid="u1"),
    )
    bot_msg = await store.append_message(
        thread.thread_id,
        MessageCreate(content="hi", sender_type="assistant", sender_name="Bot", sender_uid="u1"),
    )
    assert user_msg.sender_uid == "u1"
    assert bot_msg.sender_uid is None


@pytest.mark.asyncio
async def test_list_messages_for_unknown_thread_is_empty(store):
    assert await store.list_messages("ghost") == []


def test_get_conversation_store_defaults_to_memory_and_caches():
    first = conversation_store.get_conversation_store(RelaySettings())
    assert isinstance(first, conversation_store.InMemoryConversationStore)
    assert conversation_store.get_conversation_store() is first


def test_build_conversation_store_selects_mongo(monkeypatch):
    import sys
    import types

    fake_module = types.ModuleType("src.chatrelay.infrastructure.conversation_store_mongo")

    class FakeMongoStore:
        def __init__(self, url, db):
            self.url = url
            self.db = db

    fake_module.MongoConversationStore = FakeMongoStore
    monkeypatch.setitem(sys.modules, "src.chatrelay.infrastructure.conversation_store_mongo", fake_module)

    settings = RelaySettings(store_impl="mongo", mongo_url="mongodb://db:27017", mongo_db="relay")
    store = conversation_store.build_conversation_store(settings)
    assert isinstance(store, FakeMongoStore)
    assert store.url == "mongodb://db:27017"
    assert store.db == "relay"

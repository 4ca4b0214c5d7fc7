import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from socially.domain.chat import Connection, ConnectionState, InMemoryChatStore, MessageDispatcher, PresenceRegistry
from socially.domain.chat.exceptions import NotFoundError, StorageError, ValidationError
from socially.domain.chat.models import ChatGroup
from socially.infra.rate_limit import RateLimitExceeded


class Recorder:
	def __init__(self) -> None:
		self.frames = []
		self.delivered = asyncio.Event()

	async def __call__(self, event, payload):
		self.frames.append((event, payload))
		self.delivered.set()


class StepClock:
	def __init__(self) -> None:
		self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

	def __call__(self) -> datetime:
		self.now += timedelta(seconds=1)
		return self.now


class FakeAuthors:
	async def identity(self, user_id):
		return (f"Name {user_id}", f"https://cdn.example/{user_id}.png")


async def _settle() -> None:
	for _ in range(20):
		await asyncio.sleep(0)


async def _connect(registry, user_id, handle):
	recorder = Recorder()
	await registry.register(user_id, Connection(user_id, recorder, handle=handle))
	return recorder


@pytest.fixture
def store():
	return InMemoryChatStore()


@pytest.fixture
def registry():
	return PresenceRegistry()


@pytest.fixture
def dispatcher(store, registry):
	return MessageDispatcher(store, registry, clock=StepClock(), authors=FakeAuthors())


@pytest.mark.asyncio
async def test_each_recipient_connection_gets_one_copy(dispatcher, registry):
	tab = await _connect(registry, "B", "b-tab")
	phone = await _connect(registry, "B", "b-phone")

	message = await dispatcher.send_message("A", "hi", to_user_id="B")
	await asyncio.wait_for(tab.delivered.wait(), timeout=1)
	await asyncio.wait_for(phone.delivered.wait(), timeout=1)
	await _settle()

	assert len(tab.frames) == 1
	assert len(phone.frames) == 1
	assert tab.frames[0][0] == "chat:message"
	assert tab.frames[0][1]["message_id"] == message.message_id
	assert phone.frames[0][1]["message_id"] == message.message_id
	await registry.close_all()


@pytest.mark.asyncio
async def test_sender_other_connections_receive_echo(dispatcher, registry):
	origin = await _connect(registry, "A", "a-origin")
	other = await _connect(registry, "A", "a-other")

	message = await dispatcher.send_message("A", "hello", to_user_id="B", origin_handle="a-origin")
	await asyncio.wait_for(other.delivered.wait(), timeout=1)
	await _settle()

	assert other.frames[0][1]["message_id"] == message.message_id
	assert origin.frames == []
	await registry.close_all()


@pytest.mark.asyncio
async def test_echo_disabled_skips_sender(store, registry):
	dispatcher = MessageDispatcher(store, registry, echo_to_sender=False)
	sender_conn = await _connect(registry, "A", "a-1")
	recipient_conn = await _connect(registry, "B", "b-1")

	await dispatcher.send_message("A", "quiet", to_user_id="B")
	await asyncio.wait_for(recipient_conn.delivered.wait(), timeout=1)
	await _settle()

	assert sender_conn.frames == []
	await registry.close_all()


@pytest.mark.asyncio
async def test_offline_recipient_still_persists(dispatcher, store):
	message = await dispatcher.send_message("A", "  later  ", to_user_id="B")
	assert message.text == "later"
	assert [m.message_id for m in await store.get_history("B", "A")] == [message.message_id]


@pytest.mark.asyncio
@pytest.mark.parametrize(
	"kwargs, reason",
	[
		({"from_user_id": "A", "text": "", "to_user_id": "B"}, "empty_text"),
		({"from_user_id": "A", "text": "   ", "to_user_id": "B"}, "empty_text"),
		({"from_user_id": "", "text": "hi", "to_user_id": "B"}, "missing_sender"),
		({"from_user_id": "A", "text": "hi"}, "ambiguous_target"),
		({"from_user_id": "A", "text": "hi", "to_user_id": "B", "group_id": "g1"}, "ambiguous_target"),
		({"from_user_id": "A", "text": "hi", "to_user_id": "A"}, "self_message"),
	],
)
async def test_invalid_sends_are_rejected_without_side_effects(dispatcher, registry, store, kwargs, reason):
	recipient = await _connect(registry, "B", "b-1")
	with pytest.raises(ValidationError) as excinfo:
		await dispatcher.send_message(**kwargs)
	await _settle()

	assert excinfo.value.detail == reason
	assert await store.get_history("A", "B") == []
	assert recipient.frames == []
	await registry.close_all()


@pytest.mark.asyncio
async def test_overlong_text_is_rejected(store, registry):
	dispatcher = MessageDispatcher(store, registry, max_length=5)
	with pytest.raises(ValidationError):
		await dispatcher.send_message("A", "toolong", to_user_id="B")


@pytest.mark.asyncio
async def test_storage_failure_raises_and_skips_fanout(registry):
	class BrokenStore(InMemoryChatStore):
		async def create_message(self, message):
			raise RuntimeError("disk on fire")

	dispatcher = MessageDispatcher(BrokenStore(), registry)
	recipient = await _connect(registry, "B", "b-1")

	with pytest.raises(StorageError):
		await dispatcher.send_message("A", "hi", to_user_id="B")
	await _settle()

	assert recipient.frames == []
	await registry.close_all()


@pytest.mark.asyncio
async def test_storage_timeout_raises(registry):
	class SlowStore(InMemoryChatStore):
		async def create_message(self, message):
			await asyncio.sleep(1)
			return await super().create_message(message)

	dispatcher = MessageDispatcher(SlowStore(), registry, storage_timeout=0.01)
	with pytest.raises(StorageError) as excinfo:
		await dispatcher.send_message("A", "hi", to_user_id="B")
	assert excinfo.value.detail == "storage_timeout"


@pytest.mark.asyncio
async def test_backpressured_connection_is_dropped_without_failing_send(dispatcher, registry):
	blocker = asyncio.Event()

	async def stuck(event, payload):
		await blocker.wait()

	slow = Connection("B", stuck, handle="b-slow", buffer_size=1, send_timeout=5)
	await registry.register("B", slow)
	healthy = await _connect(registry, "B", "b-fast")

	await dispatcher.send_message("A", "one", to_user_id="B")
	await _settle()
	await dispatcher.send_message("A", "two", to_user_id="B")
	message = await dispatcher.send_message("A", "three", to_user_id="B")
	await _settle()

	assert message.text == "three"
	assert slow.state is ConnectionState.CLOSED
	assert [conn.handle for conn in await registry.connections_for("B")] == ["b-fast"]
	assert [payload["text"] for _, payload in healthy.frames] == ["one", "two", "three"]
	blocker.set()
	await registry.close_all()


@pytest.mark.asyncio
async def test_mark_read_resets_unread_but_counts_later_messages(dispatcher):
	await dispatcher.send_message("A", "one", to_user_id="B")
	await dispatcher.send_message("A", "two", to_user_id="B")
	assert await dispatcher.unread_count("B") == 2

	await dispatcher.mark_read("B", "A")
	assert await dispatcher.unread_count("B") == 0

	await dispatcher.send_message("A", "three", to_user_id="B")
	assert await dispatcher.unread_count("B") == 1
	assert await dispatcher.unread_count("A") == 0


@pytest.mark.asyncio
async def test_mark_read_only_affects_one_partner(dispatcher):
	await dispatcher.send_message("A", "from a", to_user_id="B")
	await dispatcher.send_message("C", "from c", to_user_id="B")

	await dispatcher.mark_read("B", "A")

	assert await dispatcher.unread_count("B") == 1


@pytest.mark.asyncio
async def test_history_is_shared_by_both_participants(dispatcher):
	first = await dispatcher.send_message("A", "ping", to_user_id="B")
	second = await dispatcher.send_message("B", "pong", to_user_id="A")

	history = await dispatcher.history("A", "B")
	assert [m.message_id for m in history] == [first.message_id, second.message_id]
	assert [m.message_id for m in await dispatcher.history("B", "A")] == [first.message_id, second.message_id]


@pytest.mark.asyncio
async def test_group_send_reaches_members_with_author(dispatcher, registry, store):
	await store.upsert_group(ChatGroup(group_id="g1", title="Picnic", members=frozenset({"A", "B", "C"})))
	member = await _connect(registry, "C", "c-1")
	outsider = await _connect(registry, "D", "d-1")
	sender = await _connect(registry, "A", "a-1")

	message = await dispatcher.send_message("A", "see you there", group_id="g1")
	await asyncio.wait_for(member.delivered.wait(), timeout=1)
	await asyncio.wait_for(sender.delivered.wait(), timeout=1)
	await _settle()

	assert message.author_name == "Name A"
	assert len(member.frames) == 1
	assert len(sender.frames) == 1
	assert outsider.frames == []
	assert [m.message_id for m in await dispatcher.group_history("B", "g1")] == [message.message_id]
	await registry.close_all()


@pytest.mark.asyncio
async def test_group_send_by_non_member_is_not_found(dispatcher, store):
	await store.upsert_group(ChatGroup(group_id="g1", members=frozenset({"A", "B"})))
	with pytest.raises(NotFoundError):
		await dispatcher.send_message("Z", "let me in", group_id="g1")
	with pytest.raises(NotFoundError):
		await dispatcher.send_message("A", "hello", group_id="missing")
	with pytest.raises(NotFoundError):
		await dispatcher.group_history("Z", "g1")


@pytest.mark.asyncio
async def test_inbox_lists_latest_first_with_unread(dispatcher, store):
	await store.upsert_group(ChatGroup(group_id="g1", title="Picnic", members=frozenset({"A", "B"})))
	await dispatcher.send_message("B", "hey", to_user_id="A")
	await dispatcher.send_message("A", "group hello", group_id="g1")
	await dispatcher.send_message("C", "yo", to_user_id="A")
	await dispatcher.send_message("C", "you there?", to_user_id="A")

	inbox = await dispatcher.inbox("A")

	assert [(item.kind, item.partner_id or item.group_id) for item in inbox] == [
		("direct", "C"),
		("group", "g1"),
		("direct", "B"),
	]
	assert inbox[0].unread_count == 2
	assert inbox[0].last_message.text == "you there?"
	assert inbox[0].partner_name == "Name C"
	assert inbox[1].unread_count == 0
	assert inbox[1].title == "Picnic"


@pytest.mark.asyncio
async def test_send_rate_limit(store, registry):
	dispatcher = MessageDispatcher(store, registry, send_rate_limit=1)
	await dispatcher.send_message("A", "first", to_user_id="B")
	with pytest.raises(RateLimitExceeded):
		await dispatcher.send_message("A", "second", to_user_id="B")


@pytest.mark.asyncio
async def test_author_lookup_failure_raises_storage_error(store, registry):
	class DownAuthors:
		async def identity(self, user_id):
			raise ConnectionError("redis down")

	await store.upsert_group(ChatGroup(group_id="g1", members=frozenset({"A", "B"})))
	dispatcher = MessageDispatcher(store, registry, authors=DownAuthors(), storage_timeout=0.5)

	with pytest.raises(StorageError):
		await dispatcher.send_message("A", "hi", group_id="g1")
	assert await store.get_group_history("g1") == []

	await dispatcher.send_message("A", "direct", to_user_id="B")
	with pytest.raises(StorageError):
		await dispatcher.inbox("A")


@pytest.mark.asyncio
async def test_stalled_author_lookup_times_out(store, registry):
	class StalledAuthors:
		async def identity(self, user_id):
			await asyncio.sleep(10)

	await store.upsert_group(ChatGroup(group_id="g1", members=frozenset({"A", "B"})))
	dispatcher = MessageDispatcher(store, registry, authors=StalledAuthors(), storage_timeout=0.05)

	with pytest.raises(StorageError) as excinfo:
		await dispatcher.send_message("A", "hi", group_id="g1")
	assert excinfo.value.detail == "storage_timeout"

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from setu_chat.application.dto.message import FileAttachment, MessagePage
from setu_chat.application.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    UnconfirmedMessageError,
    ValidationError,
)
from setu_chat.domain.entities.message import Reaction
from setu_chat.domain.events.message_changed import MessageChanged
from setu_chat.domain.value_objects.enums import ChangeOp, DeliveryState, MessageType
from setu_chat.realtime.reconciler import MessageReconciler
from setu_chat.realtime.store import ConversationStore
from tests.conftest import BASE_TIME, RecordingChannel, make_conversation, make_message


@pytest.fixture
def store():
    s = ConversationStore()
    s.activate("c-1")
    return s


@pytest.fixture
def channel():
    return RecordingChannel("reaction-sync:c-1")


@pytest.fixture
def reconciler(store, api, me, clock, channel):
    return MessageReconciler(store, api, api, me, reaction_channel=channel, clock=clock)


def _seed(store, api, *messages):
    api.add_messages(*messages)
    store.load("c-1", MessagePage(items=list(reversed(messages))))


@pytest.mark.asyncio
async def test_send_replaces_temp_with_confirmed(reconciler, store, api):
    api.next_ids.append("m-42")
    gate = api.hold("create_message")

    task = asyncio.create_task(reconciler.send("hi"))
    await asyncio.sleep(0)

    pending = store.get("temp-1700000000000")
    assert pending is not None
    assert pending.delivery == DeliveryState.PENDING
    assert pending.sender.id == "u-alice"

    gate.set()
    result = await task

    assert result.ok is True
    assert result.message_id == "m-42"
    assert store.ids == ["m-42"]
    confirmed = store.get("m-42")
    assert confirmed.delivery == DeliveryState.SENT
    assert confirmed.client_request_id == pending.client_request_id


@pytest.mark.asyncio
async def test_send_keeps_position_among_live_messages(reconciler, store, api):
    _seed(store, api, make_message(message_id="m-1", sender_id="u-bob"))
    gate = api.hold("create_message")
    api.next_ids.append("m-3")

    task = asyncio.create_task(reconciler.send("mine"))
    await asyncio.sleep(0)
    await reconciler.handle_change(MessageChanged(
        op=ChangeOp.INSERT,
        row=make_message(message_id="m-2", sender_id="u-bob", created_at=BASE_TIME + timedelta(seconds=5)),
    ))
    gate.set()
    await task

    assert store.ids == ["m-1", "m-3", "m-2"]


@pytest.mark.asyncio
async def test_temp_ids_stay_unique_within_one_millisecond(reconciler, store, api):
    gate = api.hold("create_message")

    first = asyncio.create_task(reconciler.send("one"))
    second = asyncio.create_task(reconciler.send("two"))
    await asyncio.sleep(0)

    assert store.ids == ["temp-1700000000000", "temp-1700000000001"]
    gate.set()
    await asyncio.gather(first, second)


@pytest.mark.asyncio
async def test_failed_send_is_kept_and_can_be_retried(reconciler, store, api):
    api.fail("create_message", PersistenceError("Service unavailable"))

    result = await reconciler.send("hi")

    assert result.ok is False
    assert result.error == "Service unavailable"
    failed = store.get("temp-1700000000000")
    assert failed.delivery == DeliveryState.FAILED
    assert failed.error == "Service unavailable"

    api.next_ids.append("m-7")
    retried = await reconciler.retry("temp-1700000000000")

    assert retried.ok is True
    assert store.ids == ["m-7"]
    sent = api.called("create_message")
    assert sent[0][1].client_request_id == sent[1][1].client_request_id


@pytest.mark.asyncio
async def test_retry_only_failed_messages(reconciler, store, api):
    await reconciler.send("hi")

    with pytest.raises(NotFoundError):
        await reconciler.retry("temp-1")
    _seed(store, api, make_message(message_id="m-9"))
    with pytest.raises(ConflictError):
        await reconciler.retry("m-9")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("content", "kwargs"),
    [("   ", {}), (None, {"message_type": MessageType.IMAGE})],
)
async def test_send_validates_before_showing(reconciler, store, content, kwargs):
    with pytest.raises(ValidationError):
        await reconciler.send(content, **kwargs)
    assert store.messages == ()


@pytest.mark.asyncio
async def test_send_file_carries_attachment(reconciler, store, api):
    file = FileAttachment(url="https://cdn/p.png", name="p.png", size=10)

    await reconciler.send(None, message_type=MessageType.IMAGE, file=file)

    dto = api.called("create_message")[0][1]
    assert dto.file == file
    assert store.messages[0].file_url == "https://cdn/p.png"


@pytest.mark.asyncio
async def test_send_reply_shows_snapshot_immediately(reconciler, store, api):
    target = make_message(message_id="m-1", sender_id="u-bob", content="q?")
    _seed(store, api, target)
    gate = api.hold("create_message")

    task = asyncio.create_task(reconciler.send("a!", reply_to=target))
    await asyncio.sleep(0)

    pending = store.messages[-1]
    assert pending.reply_to == "m-1"
    assert pending.reply_message.content == "q?"
    gate.set()
    await task


@pytest.mark.asyncio
async def test_own_insert_echo_is_ignored(reconciler, store):
    await reconciler.handle_change(MessageChanged(
        op=ChangeOp.INSERT, row=make_message(message_id="m-5", sender_id="u-alice"),
    ))

    assert store.messages == ()


@pytest.mark.asyncio
async def test_remote_insert_gets_sender_and_reply(reconciler, store, api):
    _seed(store, api, make_message(message_id="m-1", sender_id="u-alice", content="ping"))

    await reconciler.handle_change(MessageChanged(
        op=ChangeOp.INSERT,
        row=make_message(message_id="m-2", sender_id="u-bob", content="pong", reply_to="m-1"),
    ))

    incoming = store.get("m-2")
    assert incoming.sender.first_name == "Bob"
    assert incoming.reply_message.content == "ping"


@pytest.mark.asyncio
async def test_remote_insert_reply_fetched_when_not_loaded(reconciler, store, api):
    api.add_messages(make_message(message_id="m-old", content="ancient"))

    await reconciler.handle_change(MessageChanged(
        op=ChangeOp.INSERT,
        row=make_message(message_id="m-2", sender_id="u-bob", reply_to="m-old"),
    ))

    assert store.get("m-2").reply_message.content == "ancient"
    assert api.called("get_message") == [("m-old",)]


@pytest.mark.asyncio
async def test_remote_insert_with_unknown_sender_dropped(reconciler, store):
    await reconciler.handle_change(MessageChanged(
        op=ChangeOp.INSERT, row=make_message(message_id="m-2", sender_id="u-ghost"),
    ))

    assert store.messages == ()


@pytest.mark.asyncio
async def test_remote_insert_duplicate_and_foreign_conversation_ignored(reconciler, store, api):
    _seed(store, api, make_message(message_id="m-1", sender_id="u-bob"))

    await reconciler.handle_change(MessageChanged(
        op=ChangeOp.INSERT, row=make_message(message_id="m-1", sender_id="u-bob", content="dup"),
    ))
    await reconciler.handle_change(MessageChanged(
        op=ChangeOp.INSERT,
        row=make_message(message_id="m-9", conversation_id="c-2", sender_id="u-bob"),
    ))

    assert store.ids == ["m-1"]
    assert store.get("m-1").content == "hello"


@pytest.mark.asyncio
async def test_remote_insert_after_switch_is_dropped(reconciler, store, api):
    gate = api.hold("get_profile")
    task = asyncio.create_task(reconciler.handle_change(MessageChanged(
        op=ChangeOp.INSERT, row=make_message(message_id="m-2", sender_id="u-bob"),
    )))
    await asyncio.sleep(0)

    store.activate("c-2")
    gate.set()
    await task

    assert store.messages == ()
    assert reconciler.is_live() is False


@pytest.mark.asyncio
async def test_remote_update_merges_durable_fields(reconciler, store, api):
    original = make_message(
        message_id="m-1", sender_id="u-bob", content="v1", sender=api.profiles["u-bob"],
    )
    _seed(store, api, original)
    store.apply_update("m-1", reactions=(Reaction("u-alice", "👍", BASE_TIME),))

    await reconciler.handle_change(MessageChanged(
        op=ChangeOp.UPDATE,
        row=make_message(message_id="m-1", sender_id="u-bob", content="v2", is_edited=True),
    ))
    await reconciler.handle_change(MessageChanged(
        op=ChangeOp.UPDATE, row=make_message(message_id="m-unknown", sender_id="u-bob"),
    ))

    updated = store.get("m-1")
    assert updated.content == "v2"
    assert updated.is_edited is True
    assert len(updated.reactions) == 1
    assert updated.sender.first_name == "Bob"
    assert store.ids == ["m-1"]


@pytest.mark.asyncio
async def test_edit_applies_then_confirms(reconciler, store, api):
    _seed(store, api, make_message(message_id="m-1", content="helo"))

    result = await reconciler.edit("m-1", "hello")

    assert result.ok is True
    assert store.get("m-1").content == "hello"
    assert store.get("m-1").is_edited is True


@pytest.mark.asyncio
async def test_edit_failure_rolls_back(reconciler, store, api):
    original = make_message(message_id="m-1", content="helo")
    _seed(store, api, original)
    api.fail("update_message", PersistenceError("timeout"))

    result = await reconciler.edit("m-1", "hello")

    assert result.ok is False
    assert result.error == "timeout"
    assert store.get("m-1").content == "helo"
    assert store.get("m-1").is_edited is False


@pytest.mark.asyncio
async def test_delete_failure_rolls_back(reconciler, store, api):
    _seed(store, api, make_message(message_id="m-1", content="keep me"))
    api.fail("delete_message", PersistenceError("offline"))

    result = await reconciler.delete("m-1")

    assert result.ok is False
    assert store.get("m-1").is_deleted is False
    assert store.get("m-1").content == "keep me"


@pytest.mark.asyncio
async def test_delete_marks_tombstone(reconciler, store, api):
    _seed(store, api, make_message(message_id="m-1"))

    await reconciler.delete("m-1")

    tombstone = store.get("m-1")
    assert tombstone.is_deleted is True
    assert tombstone.content is None
    assert store.ids == ["m-1"]


@pytest.mark.asyncio
async def test_cannot_change_others_messages(reconciler, store, api):
    _seed(store, api, make_message(message_id="m-1", sender_id="u-bob"))

    with pytest.raises(ForbiddenError):
        await reconciler.edit("m-1", "mine now")
    with pytest.raises(ForbiddenError):
        await reconciler.delete("m-1")


@pytest.mark.asyncio
async def test_mutating_temp_message_refused(reconciler, store, api):
    gate = api.hold("create_message")
    task = asyncio.create_task(reconciler.send("hi"))
    await asyncio.sleep(0)
    temp_id = store.ids[0]

    for attempt in (
        reconciler.edit(temp_id, "x"),
        reconciler.delete(temp_id),
        reconciler.toggle_reaction(temp_id, "👍"),
        reconciler.forward(temp_id, conversation_ids=["c-2"]),
    ):
        with pytest.raises(UnconfirmedMessageError):
            await attempt
    assert api.called("update_message") == []
    gate.set()
    await task


@pytest.mark.asyncio
async def test_toggle_reaction_and_broadcast(reconciler, store, api, channel):
    _seed(store, api, make_message(message_id="m-1", sender_id="u-bob"))

    await reconciler.toggle_reaction("m-1", "🔥")
    assert [(r.user_id, r.reaction) for r in store.get("m-1").reactions] == [("u-alice", "🔥")]
    await reconciler.toggle_reaction("m-1", "🔥")

    assert store.get("m-1").reactions == ()
    assert channel.sent == [
        ("reaction_update", {"message_id": "m-1"}),
        ("reaction_update", {"message_id": "m-1"}),
    ]


@pytest.mark.asyncio
async def test_toggle_reaction_failure_rolls_back(reconciler, store, api, channel):
    _seed(store, api, make_message(message_id="m-1", sender_id="u-bob"))
    api.fail("toggle_reaction", PersistenceError("nope"))

    result = await reconciler.toggle_reaction("m-1", "🔥")

    assert result.ok is False
    assert store.get("m-1").reactions == ()
    assert channel.sent == []


def _three_messages():
    return (
        make_message(message_id="m-0", sender_id="u-bob", content="before"),
        make_message(
            message_id="m-1",
            content="mine",
            created_at=BASE_TIME + timedelta(seconds=1),
            reactions=(
                Reaction("u-alice", "🔥", BASE_TIME),
                Reaction("u-bob", "👍", BASE_TIME),
            ),
        ),
        make_message(
            message_id="m-2", sender_id="u-bob", content="after",
            created_at=BASE_TIME + timedelta(seconds=2),
        ),
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("api_method", "mutate"),
    [
        ("update_message", lambda r: r.edit("m-1", "edited")),
        ("delete_message", lambda r: r.delete("m-1")),
        ("toggle_reaction", lambda r: r.toggle_reaction("m-1", "❤️")),
        ("toggle_reaction", lambda r: r.toggle_reaction("m-1", "🔥")),
    ],
    ids=["edit", "delete", "reaction-add", "reaction-remove"],
)
async def test_failed_mutation_restores_whole_store(reconciler, store, api, channel, api_method, mutate):
    _seed(store, api, *_three_messages())
    before = store.messages
    gate = api.hold(api_method)
    api.fail(api_method, PersistenceError("offline"))

    task = asyncio.create_task(mutate(reconciler))
    await asyncio.sleep(0)
    assert store.messages != before
    gate.set()
    result = await task

    assert result.ok is False
    assert store.messages == before
    assert channel.sent == []


@pytest.mark.asyncio
async def test_forward_to_three_targets_with_middle_failure(reconciler, store, api):
    _seed(store, api, make_message(message_id="m-1", sender_id="u-bob", content="fwd"))
    api.conversations["c-1"] = make_conversation(conversation_id="c-1")
    api.conversations["c-3"] = make_conversation(conversation_id="c-3")

    result = await reconciler.forward("m-1", conversation_ids=["c-1", "c-2", "c-3"])

    assert result.forwarded_count == 2
    assert [e.conversation_id for e in result.errors] == ["c-2"]
    assert [(m.conversation_id, m.forwarded_from) for m in result.forwarded] == [
        ("c-1", "m-1"), ("c-3", "m-1"),
    ]
    assert [m.forwarded_from for m in store.messages] == [None, "m-1"]


@pytest.mark.asyncio
async def test_reaction_broadcast_refreshes_from_server(reconciler, store, api):
    _seed(store, api, make_message(message_id="m-1"))
    api.reactions["m-1"] = [Reaction("u-bob", "❤️", BASE_TIME)]

    await reconciler.on_reaction_broadcast("reaction_update", {"message_id": "m-1"})
    await reconciler.on_reaction_broadcast("reaction_update", {"message_id": "m-unknown"})
    await reconciler.on_reaction_broadcast("typing", {"message_id": "m-1"})

    assert [(r.user_id, r.reaction) for r in store.get("m-1").reactions] == [("u-bob", "❤️")]
    assert api.called("list_reactions") == [("m-1",)]


@pytest.mark.asyncio
async def test_forward_appends_copies_for_active_conversation(reconciler, store, api):
    _seed(store, api, make_message(message_id="m-1", sender_id="u-bob", content="fwd"))
    api.conversations["c-1"] = make_conversation(conversation_id="c-1")
    api.conversations["c-2"] = make_conversation(conversation_id="c-2")

    result = await reconciler.forward("m-1", conversation_ids=["c-1", "c-2", "c-404"])

    assert result.forwarded_count == 2
    assert [e.conversation_id for e in result.errors] == ["c-404"]
    copy = store.messages[-1]
    assert copy.forwarded_from == "m-1"
    assert copy.sender_id == "u-alice"
    assert len(store.messages) == 2


@pytest.mark.asyncio
async def test_forward_whole_request_failure_reported(reconciler, store, api):
    _seed(store, api, make_message(message_id="m-1"))
    api.fail("forward_message", PersistenceError("down"))

    result = await reconciler.forward("m-1", user_ids=["u-bob"])

    assert result.forwarded == []
    assert [e.error for e in result.errors] == ["down"]


@pytest.mark.asyncio
async def test_forward_requires_recipient(reconciler, store, api):
    _seed(store, api, make_message(message_id="m-1"))

    with pytest.raises(ValidationError):
        await reconciler.forward("m-1")


@pytest.mark.asyncio
async def test_confirmation_after_switch_not_applied(reconciler, store, api):
    gate = api.hold("create_message")
    task = asyncio.create_task(reconciler.send("hi"))
    await asyncio.sleep(0)

    store.activate("c-2")
    gate.set()
    result = await task

    assert result.ok is True
    assert store.conversation_id == "c-2"
    assert store.messages == ()


def test_requires_active_conversation(api, me):
    with pytest.raises(ConflictError):
        MessageReconciler(ConversationStore(), api, api, me)

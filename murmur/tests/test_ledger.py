from datetime import datetime, timedelta

import pytest
from sqlalchemy import select, func, delete

from murmur.messaging import ledger, registry
from murmur.messaging.errors import ErrorCode
from murmur.models.follows import UserFollow
from murmur.models.messages import Message
from .conftest import add_block, befriend


@pytest.fixture
def clock(monkeypatch):
    """Pin the ledger clock; assign ``clock.now`` to move it."""
    class Clock:
        now = datetime(2026, 5, 4, 12, 0, 0)

    monkeypatch.setattr(ledger, 'utcnow', lambda: Clock.now)
    return Clock


async def open_conversation(session, a, b):
    await befriend(session, a, b)
    return await registry.get_or_create(session, a.id, b.id)


async def stored_messages(session):
    res = await session.execute(select(func.count(Message.id)))
    return res.scalar_one()


@pytest.mark.asyncio
async def test_first_contact(session, alice, bob):
    conversation = await open_conversation(session, alice, bob)
    created_activity = conversation.last_activity_at

    sent = await ledger.send(session, conversation.id, alice.id, '  hello  ')
    assert sent.ok
    assert sent.value.body == 'hello'
    assert sent.value.is_read is False

    await session.refresh(conversation)
    assert conversation.last_activity_at == sent.value.created_at
    assert conversation.last_activity_at >= created_activity

    seen = await ledger.list_visible(session, conversation.id, bob.id)
    assert seen.ok
    assert [m.body for m in seen.value] == ['hello']
    assert seen.value[0].is_read is True
    assert await ledger.unread_total(session, bob.id) == 0


@pytest.mark.asyncio
async def test_viewing_own_messages_does_not_mark_them_read(session, alice, bob):
    conversation = await open_conversation(session, alice, bob)
    await ledger.send(session, conversation.id, alice.id, 'ping')

    await ledger.list_visible(session, conversation.id, alice.id)
    assert await ledger.unread_total(session, bob.id) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize('body', ['', '   ', '\n\t', None])
async def test_empty_body_rejected(session, alice, bob, body):
    conversation = await open_conversation(session, alice, bob)

    result = await ledger.send(session, conversation.id, alice.id, body)
    assert not result.ok
    assert result.error == ErrorCode.EMPTY_BODY
    assert await stored_messages(session) == 0


@pytest.mark.asyncio
async def test_length_bound(session, alice, bob, max_length):
    conversation = await open_conversation(session, alice, bob)

    too_long = await ledger.send(session, conversation.id, alice.id, 'x' * (max_length + 1))
    assert too_long.error == ErrorCode.TOO_LONG

    exact = await ledger.send(session, conversation.id, alice.id, 'x' * max_length)
    assert exact.ok
    assert len(exact.value.body) == max_length


@pytest.mark.asyncio
async def test_zero_length_bound_is_honoured(session, alice, bob):
    conversation = await open_conversation(session, alice, bob)

    result = await ledger.send(session, conversation.id, alice.id, 'x', max_length=0)
    assert result.error == ErrorCode.TOO_LONG
    assert await stored_messages(session) == 0


@pytest.mark.asyncio
async def test_length_is_measured_after_trimming(session, alice, bob):
    conversation = await open_conversation(session, alice, bob)

    result = await ledger.send(session, conversation.id, alice.id, '   ' + 'é' * 10 + '   ', max_length=10)
    assert result.ok


@pytest.mark.asyncio
async def test_outsider_cannot_send(session, alice, bob, carol):
    conversation = await open_conversation(session, alice, bob)

    result = await ledger.send(session, conversation.id, carol.id, 'let me in')
    assert result.error == ErrorCode.NOT_PARTICIPANT

    missing = await ledger.send(session, 999, alice.id, 'anyone?')
    assert missing.error == ErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_send_continues_after_unfollow(session, alice, bob):
    conversation = await open_conversation(session, alice, bob)
    await ledger.send(session, conversation.id, alice.id, 'hi')

    await session.execute(delete(UserFollow).where(UserFollow.follower_id == bob.id))
    await session.commit()

    assert (await ledger.send(session, conversation.id, alice.id, 'still there?')).ok
    assert (await ledger.send(session, conversation.id, bob.id, 'yes')).ok


@pytest.mark.asyncio
async def test_block_stops_both_sides(session, alice, bob):
    conversation = await open_conversation(session, alice, bob)
    await ledger.send(session, conversation.id, alice.id, 'hi')
    await add_block(session, alice, bob)

    for sender in (alice, bob):
        result = await ledger.send(session, conversation.id, sender.id, 'blocked?')
        assert result.error == ErrorCode.NOT_ALLOWED
        assert result.reason == ErrorCode.BLOCKED

    # history stays readable
    history = await ledger.list_visible(session, conversation.id, bob.id)
    assert [m.body for m in history.value] == ['hi']


@pytest.mark.asyncio
async def test_insert_and_touch_are_atomic(session, alice, bob, monkeypatch):
    conversation = await open_conversation(session, alice, bob)
    before = conversation.last_activity_at

    async def failing_touch(s, conversation_id, at=None):
        await s.flush()
        raise RuntimeError('connection lost')

    monkeypatch.setattr(registry, 'touch', failing_touch)
    with pytest.raises(RuntimeError):
        await ledger.send(session, conversation.id, alice.id, 'lost')
    await session.rollback()

    assert await stored_messages(session) == 0
    await session.refresh(conversation)
    assert conversation.last_activity_at == before


@pytest.mark.asyncio
async def test_list_visible_orders_by_time_then_id(session, alice, bob, clock):
    conversation = await open_conversation(session, alice, bob)
    clock.now = datetime(2026, 5, 4, 12, 0, 5)
    late = await ledger.send(session, conversation.id, alice.id, 'late')
    clock.now = datetime(2026, 5, 4, 12, 0, 1)
    first = await ledger.send(session, conversation.id, bob.id, 'first')
    second = await ledger.send(session, conversation.id, alice.id, 'second')

    result = await ledger.list_visible(session, conversation.id, alice.id)
    assert [m.id for m in result.value] == [first.value.id, second.value.id, late.value.id]

    page = await ledger.list_visible(session, conversation.id, alice.id, limit=1, offset=1)
    assert [m.body for m in page.value] == ['second']


@pytest.mark.asyncio
async def test_list_latest_windows_from_the_newest_end(session, alice, bob):
    conversation = await open_conversation(session, alice, bob)
    sent = [await ledger.send(session, conversation.id, alice.id, body) for body in ('a', 'b', 'c')]

    newest = await ledger.list_latest(session, conversation.id, bob.id, limit=2)
    assert [m.body for m in newest.value] == ['b', 'c']
    older = await ledger.list_latest(session, conversation.id, bob.id, limit=2, offset=2)
    assert [m.body for m in older.value] == ['a']
    # fetching a window leaves read state to the caller
    assert await ledger.unread_total(session, bob.id) == 3

    await ledger.mark_read(session, bob.id, newest.value)
    assert await ledger.unread_total(session, bob.id) == 1
    assert sent[0].value.id == older.value[0].id


@pytest.mark.asyncio
async def test_list_visible_requires_participant(session, alice, bob, carol):
    conversation = await open_conversation(session, alice, bob)
    await ledger.send(session, conversation.id, alice.id, 'private')

    result = await ledger.list_visible(session, conversation.id, carol.id)
    assert result.error == ErrorCode.NOT_FOUND
    assert await ledger.unread_total(session, bob.id) == 1


@pytest.mark.asyncio
async def test_soft_delete_is_per_side(session, alice, bob):
    conversation = await open_conversation(session, alice, bob)
    sent = await ledger.send(session, conversation.id, alice.id, 'oops')

    assert (await ledger.soft_delete(session, sent.value.id, alice.id)).ok

    mine = await ledger.list_visible(session, conversation.id, alice.id)
    theirs = await ledger.list_visible(session, conversation.id, bob.id)
    assert mine.value == []
    assert [m.body for m in theirs.value] == ['oops']
    assert await stored_messages(session) == 1


@pytest.mark.asyncio
async def test_repeated_soft_delete_reports_not_found(session, alice, bob):
    conversation = await open_conversation(session, alice, bob)
    sent = await ledger.send(session, conversation.id, alice.id, 'twice')

    assert (await ledger.soft_delete(session, sent.value.id, bob.id)).ok
    again = await ledger.soft_delete(session, sent.value.id, bob.id)
    assert again.error == ErrorCode.NOT_FOUND

    message = await session.get(Message, sent.value.id)
    assert message.deleted_by_recipient is True
    assert message.deleted_by_sender is False


@pytest.mark.asyncio
async def test_message_purged_once_hidden_for_both(session, alice, bob):
    conversation = await open_conversation(session, alice, bob)
    sent = await ledger.send(session, conversation.id, alice.id, 'gone')

    await ledger.soft_delete(session, sent.value.id, alice.id)
    await ledger.soft_delete(session, sent.value.id, bob.id)

    assert await stored_messages(session) == 0
    assert (await ledger.soft_delete(session, sent.value.id, alice.id)).error == ErrorCode.NOT_FOUND
    # the conversation itself is never removed
    assert await registry.get_by_id(session, conversation.id, alice.id) is not None


@pytest.mark.asyncio
async def test_soft_delete_by_outsider(session, alice, bob, carol):
    conversation = await open_conversation(session, alice, bob)
    sent = await ledger.send(session, conversation.id, alice.id, 'mine')

    result = await ledger.soft_delete(session, sent.value.id, carol.id)
    assert result.error == ErrorCode.NOT_PARTICIPANT
    assert (await ledger.soft_delete(session, 12345, alice.id)).error == ErrorCode.NOT_FOUND
    assert (await ledger.soft_delete(session, sent.value.id, alice.id, conversation_id=999)).error == ErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_delete_conversation_for_one_side(session, alice, bob, carol):
    conversation = await open_conversation(session, alice, bob)
    await ledger.send(session, conversation.id, alice.id, 'one')
    await ledger.send(session, conversation.id, bob.id, 'two')

    assert (await ledger.delete_conversation_for_user(session, conversation.id, alice.id)).ok
    assert (await ledger.list_visible(session, conversation.id, alice.id)).value == []
    assert [m.body for m in (await ledger.list_visible(session, conversation.id, bob.id)).value] == ['one', 'two']

    # later messages show up again for alice
    await ledger.send(session, conversation.id, bob.id, 'three')
    assert [m.body for m in (await ledger.list_visible(session, conversation.id, alice.id)).value] == ['three']

    assert (await ledger.delete_conversation_for_user(session, conversation.id, carol.id)).error == ErrorCode.NOT_PARTICIPANT
    assert (await ledger.delete_conversation_for_user(session, 999, alice.id)).error == ErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_delete_conversation_purges_messages_hidden_for_both(session, alice, bob):
    conversation = await open_conversation(session, alice, bob)
    await ledger.send(session, conversation.id, alice.id, 'one')
    await ledger.send(session, conversation.id, bob.id, 'two')

    await ledger.delete_conversation_for_user(session, conversation.id, alice.id)
    await ledger.delete_conversation_for_user(session, conversation.id, bob.id)

    assert await stored_messages(session) == 0
    assert await registry.get_by_id(session, conversation.id, bob.id) is not None


@pytest.mark.asyncio
async def test_poll_uses_strict_timestamp_boundary(session, alice, bob, clock):
    conversation = await open_conversation(session, alice, bob)
    t1 = clock.now
    m1 = (await ledger.send(session, conversation.id, alice.id, 'm1')).value

    before = await ledger.list_since(session, conversation.id, bob.id, t1 - timedelta(microseconds=1))
    assert [m.id for m in before.value] == [m1.id]

    at = await ledger.list_since(session, conversation.id, bob.id, t1)
    assert at.value == []


@pytest.mark.asyncio
async def test_poll_messages_sharing_a_timestamp(session, alice, bob, clock):
    conversation = await open_conversation(session, alice, bob)
    t1 = clock.now
    m1 = (await ledger.send(session, conversation.id, alice.id, 'm1')).value
    m2 = (await ledger.send(session, conversation.id, bob.id, 'm2')).value
    assert m1.created_at == m2.created_at

    both = await ledger.list_since(session, conversation.id, bob.id, t1 - timedelta(microseconds=1))
    assert [m.id for m in both.value] == [m1.id, m2.id]

    assert (await ledger.list_since(session, conversation.id, bob.id, t1)).value == []
    after_m1 = await ledger.list_since(session, conversation.id, bob.id, t1, after_id=m1.id)
    assert [m.id for m in after_m1.value] == [m2.id]
    assert (await ledger.list_since(session, conversation.id, bob.id, t1, after_id=m2.id)).value == []


@pytest.mark.asyncio
async def test_poll_respects_visibility_and_membership(session, alice, bob, carol, clock):
    conversation = await open_conversation(session, alice, bob)
    since = clock.now - timedelta(seconds=1)
    hidden = (await ledger.send(session, conversation.id, alice.id, 'hidden')).value
    await ledger.send(session, conversation.id, alice.id, 'shown')
    await ledger.soft_delete(session, hidden.id, bob.id)

    polled = await ledger.list_since(session, conversation.id, bob.id, since)
    assert [m.body for m in polled.value] == ['shown']
    assert (await ledger.list_since(session, conversation.id, carol.id, since)).error == ErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_poll_does_not_mark_read_and_mark_read_is_idempotent(session, alice, bob, clock):
    conversation = await open_conversation(session, alice, bob)
    since = clock.now - timedelta(seconds=1)
    await ledger.send(session, conversation.id, alice.id, 'a')
    await ledger.send(session, conversation.id, alice.id, 'b')

    polled = await ledger.list_since(session, conversation.id, bob.id, since)
    assert len(polled.value) == 2
    assert await ledger.unread_total(session, bob.id) == 2

    assert await ledger.mark_read(session, bob.id, polled.value) == 2
    assert await ledger.mark_read(session, bob.id, polled.value) == 0
    assert await ledger.unread_total(session, bob.id) == 0


@pytest.mark.asyncio
async def test_unread_total_spans_conversations_and_ignores_hidden(session, alice, bob, carol):
    with_bob = await open_conversation(session, alice, bob)
    with_carol = await open_conversation(session, alice, carol)
    await ledger.send(session, with_bob.id, bob.id, 'one')
    hidden = (await ledger.send(session, with_carol.id, carol.id, 'two')).value
    await ledger.send(session, with_carol.id, carol.id, 'three')

    assert await ledger.unread_total(session, alice.id) == 3
    await ledger.soft_delete(session, hidden.id, alice.id)
    assert await ledger.unread_total(session, alice.id) == 2

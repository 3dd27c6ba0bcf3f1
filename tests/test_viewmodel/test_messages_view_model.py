import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from mentorchat.realtime.hub import RealtimeHub
from mentorchat.schemas.user import UserProfile, UserRole
from mentorchat.viewmodel import MessagesViewModel, OutboundState
from test_helpers import create_test_user

pytestmark = pytest.mark.asyncio


@pytest.fixture
def incoming():
    return []


@pytest.fixture
def patient_vm(make_service, patient, incoming) -> MessagesViewModel:
    return MessagesViewModel(
        make_service(patient), patient.id, on_incoming=incoming.append
    )


async def test_open_conversation_loads_history_and_subscribes(
    patient_vm, make_service, hub: RealtimeHub, patient, mentor
):
    mentor_service = make_service(mentor)
    conversation_id = await mentor_service.get_or_create_conversation(
        mentor.id, patient.id
    )
    await mentor_service.send_message(conversation_id, mentor.id, "welcome")

    view = await patient_vm.open_conversation(UserProfile.from_user(mentor))

    assert view.id == conversation_id
    assert [m.content for m in view.messages] == ["welcome"]
    assert patient_vm.active is view
    assert hub.channel_count == 1


async def test_send_is_optimistic_then_confirmed(patient_vm, monkeypatch, mentor):
    view = await patient_vm.open_conversation(UserProfile.from_user(mentor))
    service = patient_vm.service
    real_send = service.send_message
    seen_during_call = []

    async def spying_send(*args, **kwargs):
        seen_during_call.extend((m.id, m.state) for m in view.messages)
        return await real_send(*args, **kwargs)

    monkeypatch.setattr(service, "send_message", spying_send)

    entry = await patient_vm.send("  Hello mentor  ")

    [(temp_id, state)] = seen_during_call
    assert temp_id.startswith("temp-")
    assert state == OutboundState.PENDING
    assert entry.state == OutboundState.CONFIRMED
    assert [m.id for m in view.messages] == [entry.id]
    assert not entry.id.startswith("temp-")
    assert view.messages[0].content == "Hello mentor"


async def test_own_echo_is_not_duplicated(patient_vm, hub: RealtimeHub, mentor, incoming):
    view = await patient_vm.open_conversation(UserProfile.from_user(mentor))

    entry = await patient_vm.send("echo me")
    await hub.flush()

    assert [m.id for m in view.messages] == [entry.id]
    assert patient_vm.unread_counts[mentor.id] == 0
    assert incoming == []


async def test_echo_before_reply_is_not_duplicated(patient_vm, monkeypatch, mentor):
    view = await patient_vm.open_conversation(UserProfile.from_user(mentor))
    service = patient_vm.service
    real_send = service.send_message

    async def send_with_early_echo(*args, **kwargs):
        message = await real_send(*args, **kwargs)
        patient_vm.receive(message)
        return message

    monkeypatch.setattr(service, "send_message", send_with_early_echo)

    entry = await patient_vm.send("race")

    assert [m.id for m in view.messages] == [entry.id]
    assert view.messages[0].state == OutboundState.CONFIRMED


async def test_failed_send_rolls_back_entry(patient_vm, monkeypatch, mentor):
    view = await patient_vm.open_conversation(UserProfile.from_user(mentor))
    monkeypatch.setattr(
        patient_vm.service.msg_repo,
        "create_message",
        AsyncMock(side_effect=SQLAlchemyError("disk full")),
    )

    entry = await patient_vm.send("will fail")

    assert entry.state == OutboundState.FAILED
    assert view.messages == []
    assert await patient_vm.service.get_conversation_messages(view.id) == []
    assert patient_vm.notices == ["Message not sent: Could not send message. Please ensure the messaging system is set up correctly."]


async def test_blank_send_is_ignored(patient_vm, mentor):
    view = await patient_vm.open_conversation(UserProfile.from_user(mentor))

    assert await patient_vm.send("   ") is None
    assert view.messages == []


async def test_send_without_active_conversation(patient_vm):
    assert await patient_vm.send("nobody listening") is None


async def test_inbound_message_counts_as_unread_until_opened(
    patient_vm, make_service, hub: RealtimeHub, mentor, incoming
):
    view = await patient_vm.open_conversation(UserProfile.from_user(mentor))
    mentor_service = make_service(mentor)

    sent = await mentor_service.send_message(view.id, mentor.id, "are you there?")
    await hub.flush()

    assert [m.id for m in view.messages] == [str(sent.id)]
    assert patient_vm.unread_counts[mentor.id] == 1
    assert view.unread_count == 1
    assert [m.id for m in incoming] == [sent.id]

    # Redelivery of the same message changes nothing
    assert patient_vm.receive(sent) is False
    assert patient_vm.unread_counts[mentor.id] == 1

    await patient_vm.open_conversation(UserProfile.from_user(mentor))
    assert patient_vm.unread_counts[mentor.id] == 0
    assert view.unread_count == 0
    assert await mentor_service.get_unread_counts(patient_vm.current_user_id) == {}


async def test_switching_conversations_keeps_one_subscription(
    patient_vm, make_service, db_session, hub: RealtimeHub, mentor
):
    other_mentor = create_test_user(full_name="Nia Mentor", role=UserRole.MENTOR)
    db_session.add(other_mentor)
    await db_session.commit()

    first = await patient_vm.open_conversation(UserProfile.from_user(mentor))
    second = await patient_vm.open_conversation(UserProfile.from_user(other_mentor))
    assert hub.channel_count == 1

    await make_service(mentor).send_message(first.id, mentor.id, "old channel")
    await hub.flush()

    assert first.messages == []
    assert patient_vm.active is second
    assert patient_vm.unread_counts.get(mentor.id, 0) == 0


async def test_reopening_cached_conversation_catches_up(
    patient_vm, make_service, db_session, hub: RealtimeHub, mentor
):
    other_mentor = create_test_user(full_name="Nia Mentor", role=UserRole.MENTOR)
    db_session.add(other_mentor)
    await db_session.commit()

    first = await patient_vm.open_conversation(UserProfile.from_user(mentor))
    await patient_vm.open_conversation(UserProfile.from_user(other_mentor))
    await make_service(mentor).send_message(first.id, mentor.id, "while away")
    await hub.flush()

    reopened = await patient_vm.open_conversation(UserProfile.from_user(mentor))

    assert reopened is first
    assert [m.content for m in reopened.messages] == ["while away"]
    assert reopened.unread_count == 0


async def test_reopening_active_conversation_does_not_resubscribe(
    patient_vm, hub: RealtimeHub, mentor
):
    await patient_vm.open_conversation(UserProfile.from_user(mentor))
    subscription = patient_vm._subscription

    await patient_vm.open_conversation(UserProfile.from_user(mentor))

    assert patient_vm._subscription is subscription
    assert hub.channel_count == 1


async def test_open_conversation_failure_becomes_notice(patient_vm, patient):
    view = await patient_vm.open_conversation(UserProfile.from_user(patient))

    assert view is None
    assert patient_vm.notices == [
        "Could not open conversation: Cannot create a conversation with yourself."
    ]


async def test_load_unread_counts_replaces_local_counts(
    patient_vm, make_service, patient, mentor
):
    mentor_service = make_service(mentor)
    conversation_id = await mentor_service.get_or_create_conversation(
        mentor.id, patient.id
    )
    await mentor_service.send_message(conversation_id, mentor.id, "one")
    await mentor_service.send_message(conversation_id, mentor.id, "two")
    patient_vm.unread_counts = {mentor.id: 7}

    counts = await patient_vm.load_unread_counts()

    assert counts == {mentor.id: 2}


async def test_poll_unread_counts_refreshes_periodically(
    patient_vm, make_service, patient, mentor
):
    mentor_service = make_service(mentor)
    conversation_id = await mentor_service.get_or_create_conversation(
        mentor.id, patient.id
    )
    await mentor_service.send_message(conversation_id, mentor.id, "ping")

    task = asyncio.create_task(patient_vm.poll_unread_counts(interval=0.01))
    try:
        for _ in range(100):
            if patient_vm.unread_counts:
                break
            await asyncio.sleep(0.01)
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert patient_vm.unread_counts == {mentor.id: 1}


async def test_load_contacts(patient_vm, patient, mentor):
    contacts = await patient_vm.load_contacts(patient)

    assert [c.id for c in contacts] == [mentor.id]


async def test_close_releases_subscription(patient_vm, hub: RealtimeHub, mentor):
    await patient_vm.open_conversation(UserProfile.from_user(mentor))

    await patient_vm.close()

    assert hub.channel_count == 0
    assert patient_vm.active is None


async def test_draft_is_cleared_before_backend_call(patient_vm, monkeypatch, mentor):
    view = await patient_vm.open_conversation(UserProfile.from_user(mentor))
    service = patient_vm.service
    real_send = service.send_message
    drafts_during_call = []

    async def spying_send(*args, **kwargs):
        drafts_during_call.append(patient_vm.draft)
        return await real_send(*args, **kwargs)

    monkeypatch.setattr(service, "send_message", spying_send)
    patient_vm.draft = "typed in the box"

    entry = await patient_vm.send()

    assert drafts_during_call == [""]
    assert entry.content == "typed in the box"
    assert [m.id for m in view.messages] == [entry.id]

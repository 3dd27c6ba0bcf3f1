from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from mentorchat.realtime.changes import PENDING_CHANGES_KEY
from mentorchat.realtime.hub import RealtimeHub
from mentorchat.schemas.user import UserRole
from mentorchat.services.dependencies import create_messaging_service
from mentorchat.services.exceptions import BackendError
from test_helpers import create_test_user

pytestmark = pytest.mark.asyncio


async def test_committed_message_reaches_subscriber(
    make_service, hub: RealtimeHub, patient, mentor
):
    service = make_service(patient)
    conversation_id = await service.get_or_create_conversation(patient.id, mentor.id)
    received = []
    subscription = service.subscribe_to_conversation(conversation_id, received.append)

    sent = await service.send_message(conversation_id, patient.id, "realtime hello")
    await hub.flush()

    assert [m.id for m in received] == [sent.id]
    assert received[0].content == "realtime hello"
    assert received[0].created_at == sent.created_at
    await subscription.unsubscribe()


async def test_other_conversations_are_not_delivered(
    make_service, db_session, hub: RealtimeHub, patient, mentor
):
    other = create_test_user(role=UserRole.MENTOR)
    db_session.add(other)
    await db_session.commit()
    service = make_service(patient)
    watched = await service.get_or_create_conversation(patient.id, mentor.id)
    unwatched = await service.get_or_create_conversation(patient.id, other.id)
    received = []
    service.subscribe_to_conversation(watched, received.append)

    await service.send_message(unwatched, patient.id, "not for you")
    await hub.flush()

    assert received == []


async def test_rolled_back_insert_is_not_published(
    make_service, db_session, hub: RealtimeHub, patient, mentor, monkeypatch
):
    service = make_service(patient)
    conversation_id = await service.get_or_create_conversation(patient.id, mentor.id)
    received = []
    service.subscribe_to_conversation(conversation_id, received.append)
    # Fail after the insert is flushed but before commit
    monkeypatch.setattr(
        service.session, "commit", AsyncMock(side_effect=SQLAlchemyError("commit failed"))
    )

    with pytest.raises(BackendError):
        await service.send_message(conversation_id, patient.id, "never committed")
    await hub.flush()

    assert received == []
    assert PENDING_CHANGES_KEY not in db_session.sync_session.info


async def test_unsubscribed_callback_is_not_called(
    make_service, hub: RealtimeHub, patient, mentor
):
    service = make_service(patient)
    conversation_id = await service.get_or_create_conversation(patient.id, mentor.id)
    received = []
    subscription = service.subscribe_to_conversation(conversation_id, received.append)
    await subscription.unsubscribe()

    await service.send_message(conversation_id, patient.id, "after unsubscribe")
    await hub.flush()

    assert received == []


async def test_injected_hub_receives_committed_inserts(
    db_session, hub: RealtimeHub, patient, mentor
):
    private_hub = RealtimeHub()
    service = create_messaging_service(db_session, current_user=patient, hub=private_hub)
    conversation_id = await service.get_or_create_conversation(patient.id, mentor.id)
    received = []
    service.subscribe_to_conversation(conversation_id, received.append)

    sent = await service.send_message(conversation_id, patient.id, "private hub")
    await private_hub.flush()

    assert [m.id for m in received] == [sent.id]
    assert hub.channel_count == 0
    await private_hub.close_all()

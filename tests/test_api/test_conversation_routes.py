import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mentorchat.models import User
from mentorchat.schemas.user import UserRole
from test_helpers import create_test_conversation, create_test_user

pytestmark = pytest.mark.asyncio


async def _open_conversation(client: AsyncClient, other_user: User, **extra) -> str:
    response = await client.post(
        "/conversations", json={"other_user_id": str(other_user.id), **extra}
    )
    assert response.status_code == 200, response.text
    return response.json()["conversation_id"]


async def test_create_conversation_is_idempotent(
    authenticated_client: AsyncClient, other_user: User
):
    first = await _open_conversation(authenticated_client, other_user)
    second = await _open_conversation(authenticated_client, other_user)

    assert first == second


async def test_create_conversation_with_self(
    authenticated_client: AsyncClient, logged_in_user: User
):
    response = await authenticated_client.post(
        "/conversations", json={"other_user_id": str(logged_in_user.id)}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot create a conversation with yourself."


async def test_create_conversation_with_unknown_user(authenticated_client: AsyncClient):
    response = await authenticated_client.post(
        "/conversations", json={"other_user_id": str(uuid.uuid4())}
    )

    assert response.status_code == 404


async def test_conversation_by_appointment(
    authenticated_client: AsyncClient, other_user: User
):
    appointment_id = str(uuid.uuid4())
    conversation_id = await _open_conversation(
        authenticated_client, other_user, appointment_id=appointment_id
    )

    found = await authenticated_client.get(f"/conversations/by-appointment/{appointment_id}")
    missing = await authenticated_client.get(f"/conversations/by-appointment/{uuid.uuid4()}")

    assert found.json() == {"conversation_id": conversation_id}
    assert missing.json() == {"conversation_id": None}


async def test_send_and_list_messages(
    authenticated_client: AsyncClient, logged_in_user: User, other_user: User
):
    conversation_id = await _open_conversation(authenticated_client, other_user)

    sent = await authenticated_client.post(
        f"/conversations/{conversation_id}/messages", json={"content": "Hi Morgan"}
    )
    assert sent.status_code == 201
    body = sent.json()
    assert body["sender_id"] == str(logged_in_user.id)
    assert body["content"] == "Hi Morgan"

    listed = await authenticated_client.get(f"/conversations/{conversation_id}/messages")
    assert listed.status_code == 200
    assert [m["id"] for m in listed.json()] == [body["id"]]


async def test_send_empty_message(authenticated_client: AsyncClient, other_user: User):
    conversation_id = await _open_conversation(authenticated_client, other_user)

    response = await authenticated_client.post(
        f"/conversations/{conversation_id}/messages", json={"content": ""}
    )

    assert response.status_code == 400


async def test_message_routes_forbid_outsiders(
    authenticated_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    other_user: User,
):
    stranger = create_test_user(role=UserRole.PATIENT)
    async with db_test_session_manager() as session:
        session.add(stranger)
        await session.flush()
        rows = create_test_conversation(stranger, other_user)
        session.add_all(rows)
        await session.commit()
    conversation_id = rows[0].id

    sent = await authenticated_client.post(
        f"/conversations/{conversation_id}/messages", json={"content": "let me in"}
    )
    listed = await authenticated_client.get(f"/conversations/{conversation_id}/messages")
    detail = await authenticated_client.get(f"/conversations/{conversation_id}")

    assert sent.status_code == 403
    assert sent.json()["detail"] == "Sender is not a participant in this conversation."
    assert listed.status_code == 403
    assert detail.status_code == 403


async def test_unknown_conversation(authenticated_client: AsyncClient):
    missing = uuid.uuid4()

    sent = await authenticated_client.post(
        f"/conversations/{missing}/messages", json={"content": "hello?"}
    )
    detail = await authenticated_client.get(f"/conversations/{missing}")

    assert sent.status_code == 404
    assert detail.status_code == 404


async def test_conversation_detail_and_inbox(
    authenticated_client: AsyncClient, logged_in_user: User, other_user: User
):
    conversation_id = await _open_conversation(authenticated_client, other_user)
    await authenticated_client.post(
        f"/conversations/{conversation_id}/messages", json={"content": "latest"}
    )

    detail = await authenticated_client.get(f"/conversations/{conversation_id}")
    inbox = await authenticated_client.get("/conversations")

    assert detail.status_code == 200
    participants = {p["user_id"]: p["user"]["full_name"] for p in detail.json()["participants"]}
    assert participants == {
        str(logged_in_user.id): "Test Patient",
        str(other_user.id): "Morgan Mentor",
    }
    [summary] = inbox.json()
    assert summary["conversation_id"] == conversation_id
    assert summary["other_user_name"] == "Morgan Mentor"
    assert summary["last_message_content"] == "latest"
    assert summary["unread_count"] == 0


async def test_invalid_page_arguments(authenticated_client: AsyncClient, other_user: User):
    conversation_id = await _open_conversation(authenticated_client, other_user)

    response = await authenticated_client.get(
        f"/conversations/{conversation_id}/messages", params={"limit": 0}
    )

    assert response.status_code == 400


async def test_mark_conversation_read(
    authenticated_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    logged_in_user: User,
    other_user: User,
):
    from mentorchat.services.dependencies import create_messaging_service

    conversation_id = await _open_conversation(authenticated_client, other_user)
    async with db_test_session_manager() as session:
        service = create_messaging_service(session, current_user=other_user)
        await service.send_message(uuid.UUID(conversation_id), other_user.id, "unread")

    before = await authenticated_client.get("/me/unread-counts")
    response = await authenticated_client.post(f"/conversations/{conversation_id}/read")
    after = await authenticated_client.get("/me/unread-counts")

    assert before.json() == {str(other_user.id): 1}
    assert response.status_code == 204
    assert after.json() == {}

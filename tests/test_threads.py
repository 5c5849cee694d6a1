import asyncio

import pytest
from pymongo.errors import AutoReconnect

from chatternet.core.exceptions import SelfThreadError, ThreadNotFoundError, TransientStoreError, UnknownUserError
from chatternet.repositories.thread_repository import ThreadRepository, pair_key
from chatternet.repositories.user_repository import UserRepository
from conftest import auth


@pytest.mark.asyncio
async def test_resolve_is_idempotent_regardless_of_order(thread_service):
    first = await thread_service.resolve_thread("alice", "bob")
    second = await thread_service.resolve_thread("bob", "alice")
    assert first == second


@pytest.mark.asyncio
async def test_concurrent_resolve_creates_exactly_one_thread(db, thread_service):
    pairs = [("alice", "bob"), ("bob", "alice")] * 10
    ids = await asyncio.gather(*(thread_service.resolve_thread(a, b) for a, b in pairs))
    assert len(set(ids)) == 1
    assert await ThreadRepository(db).count_for_pair("alice", "bob") == 1


@pytest.mark.asyncio
async def test_distinct_pairs_get_distinct_threads(thread_service):
    ab = await thread_service.resolve_thread("alice", "bob")
    ac = await thread_service.resolve_thread("alice", "carol")
    assert ab != ac


@pytest.mark.asyncio
async def test_self_thread_rejected(thread_service):
    with pytest.raises(SelfThreadError):
        await thread_service.resolve_thread("alice", "alice")


@pytest.mark.asyncio
async def test_unknown_participant_rejected(db, thread_service):
    with pytest.raises(UnknownUserError):
        await thread_service.resolve_thread("alice", "mallory")
    assert await db["threads"].count_documents({}) == 0


@pytest.mark.asyncio
async def test_get_thread_with_malformed_id(thread_service):
    with pytest.raises(ThreadNotFoundError):
        await thread_service.get_thread("not-an-object-id")


def test_pair_key_is_order_independent():
    assert pair_key("bob", "alice") == pair_key("alice", "bob")


def test_pair_key_does_not_collide_on_separators():
    assert pair_key("a|b", "c") != pair_key("a", "b|c")
    assert pair_key("a,b", "c") != pair_key("a", "b,c")


@pytest.mark.asyncio
async def test_ids_with_separators_get_their_own_threads(db, thread_service, chat_service):
    await db["users"].insert_many([{"_id": uid, "handle": uid} for uid in ("a|b", "c", "a", "b|c")])
    first = await thread_service.resolve_thread("a|b", "c")
    second = await thread_service.resolve_thread("a", "b|c")
    assert first != second
    saved = await chat_service.append(second, "a", "hello")
    assert saved["seq"] == 1


@pytest.mark.asyncio
async def test_directory_outage_is_transient(db, thread_service, monkeypatch):
    async def broken(*args, **kwargs):
        raise AutoReconnect("primary down")

    monkeypatch.setattr(UserRepository, "get_users_by_ids", broken)
    with pytest.raises(TransientStoreError):
        await thread_service.resolve_thread("alice", "bob")
    assert await db["threads"].count_documents({}) == 0


@pytest.mark.asyncio
async def test_resolve_endpoint(http):
    response = await http.post("/threads/resolve", json={"peer_id": "bob"}, headers=auth("alice"))
    assert response.status_code == 200
    thread_id = response.json()["thread_id"]

    again = await http.post("/threads/resolve", json={"peer_id": "alice"}, headers=auth("bob"))
    assert again.json()["thread_id"] == thread_id


@pytest.mark.asyncio
async def test_resolve_endpoint_errors(http):
    response = await http.post("/threads/resolve", json={"peer_id": "alice"}, headers=auth("alice"))
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "SelfThreadError"

    response = await http.post("/threads/resolve", json={"peer_id": "ghost"}, headers=auth("alice"))
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "UnknownUserError"


@pytest.mark.asyncio
async def test_unauthenticated_requests_are_rejected(http):
    response = await http.post("/threads/resolve", json={"peer_id": "bob"})
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "UnauthenticatedError"

    response = await http.post("/threads/resolve", json={"peer_id": "bob"}, headers={"Authorization": "Bearer junk"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_list_threads_newest_activity_first(http, chat_service, clock):
    await chat_service.send_to_peer("alice", "bob", "first")
    clock.advance(seconds=5)
    await chat_service.send_to_peer("alice", "carol", "second")

    response = await http.get("/threads", headers=auth("alice"))
    assert response.status_code == 200
    items = response.json()["items"]
    assert [it["peer_id"] for it in items] == ["carol", "bob"]
    assert items[0]["last_message_preview"] == "second"

"""Repository behaviour against a temporary SQLite database."""

from __future__ import annotations

from typing import AsyncIterator

import pytest

from app import identifiers
from app.database import Database
from app.db_models import UserRecord
from app.errors import ConstraintViolation, PersistenceError
from app.identifiers import generate_id
from app.models import Media, User, Watchlist
from app.services.media import MediaRepository
from app.services.users import UserRepository
from app.services.watchlists import WatchlistRepository
from app.utils import is_ulid


@pytest.fixture
async def database(database_url: str) -> AsyncIterator[Database]:
    database = Database(database_url)
    await database.create_all()
    try:
        yield database
    finally:
        await database.dispose()


@pytest.mark.anyio("asyncio")
async def test_generate_id_returns_unique_ulids(database: Database) -> None:
    async with database.session() as session:
        generated = {await generate_id(session, UserRecord) for _ in range(50)}

    assert len(generated) == 50
    assert all(is_ulid(value) for value in generated)


@pytest.mark.anyio("asyncio")
async def test_generate_id_retries_on_collision(
    database: Database, monkeypatch: pytest.MonkeyPatch
) -> None:
    users = UserRepository(database.session_factory)
    existing = await users.sync(User.register("alice01", "pw"))

    candidates = iter([existing.id, "01HZZZZZZZZZZZZZZZZZZZZZZZ"])
    monkeypatch.setattr(identifiers, "new_ulid", lambda: next(candidates))

    async with database.session() as session:
        assert await generate_id(session, UserRecord) == "01HZZZZZZZZZZZZZZZZZZZZZZZ"


@pytest.mark.anyio("asyncio")
async def test_generate_id_gives_up_after_max_attempts(
    database: Database, monkeypatch: pytest.MonkeyPatch
) -> None:
    users = UserRepository(database.session_factory)
    existing = await users.sync(User.register("alice01", "pw"))
    monkeypatch.setattr(identifiers, "new_ulid", lambda: existing.id)

    async with database.session() as session:
        with pytest.raises(PersistenceError):
            await generate_id(session, UserRecord, max_attempts=3)


@pytest.mark.anyio("asyncio")
async def test_sync_creates_then_updates_user(database: Database) -> None:
    users = UserRepository(database.session_factory)

    user = await users.sync(User.register("Alice01", "pw"))
    assert user.id is not None and user.created_at is not None
    created_at = user.created_at

    user.merge({"username": "alice02"})
    await users.sync(user)

    stored = await users.fetch_by_id(user.id)
    assert stored is not None
    assert stored.username == "alice02"
    assert stored.created_at == created_at
    assert stored.updated_at >= created_at
    assert await users.from_username("ALICE02") is not None
    assert await users.from_username("alice01") is None


@pytest.mark.anyio("asyncio")
async def test_duplicate_username_is_a_constraint_violation(database: Database) -> None:
    users = UserRepository(database.session_factory)
    await users.sync(User.register("alice01", "pw"))

    with pytest.raises(ConstraintViolation):
        await users.sync(User.register("alice01", "other"))


@pytest.mark.anyio("asyncio")
async def test_missing_ids_reports_unknown_users(database: Database) -> None:
    users = UserRepository(database.session_factory)
    alice = await users.sync(User.register("alice01", "pw"))

    assert await users.missing_ids([]) == []
    assert await users.missing_ids([alice.id, "nobody"]) == ["nobody"]


@pytest.mark.anyio("asyncio")
async def test_watchlist_members_round_trip_in_order(database: Database) -> None:
    users = UserRepository(database.session_factory)
    watchlists = WatchlistRepository(database.session_factory)
    owner, bob, carol = [
        await users.sync(User.register(name, "pw")) for name in ("owner", "bob", "carol")
    ]

    watchlist = await watchlists.sync(
        Watchlist(
            owner=owner.id,
            members=[carol.id, bob.id],
            title="Movies",
            description="Weekend list",
        )
    )
    stored = await watchlists.fetch_by_id(watchlist.id)
    assert stored is not None
    assert stored.members == [carol.id, bob.id]

    stored.merge({"members": [bob.id]})
    await watchlists.sync(stored)
    reloaded = await watchlists.fetch_by_id(watchlist.id)
    assert reloaded is not None
    assert reloaded.members == [bob.id]
    assert reloaded.owner == owner.id


@pytest.mark.anyio("asyncio")
async def test_list_for_user_returns_owned_then_shared(database: Database) -> None:
    watchlists = WatchlistRepository(database.session_factory)
    shared = await watchlists.sync(
        Watchlist(owner="someone", members=["me"], title="Shared", description="From a friend")
    )
    owned = await watchlists.sync(
        Watchlist(owner="me", title="Mine", description="My own list")
    )
    await watchlists.sync(Watchlist(owner="someone", title="Private", description="Not mine"))

    result = await watchlists.list_for_user("me")

    assert [watchlist.id for watchlist in result] == [owned.id, shared.id]


@pytest.mark.anyio("asyncio")
async def test_watchlist_without_owner_is_rejected(database: Database) -> None:
    watchlists = WatchlistRepository(database.session_factory)

    with pytest.raises(ConstraintViolation):
        await watchlists.sync(Watchlist(title="Orphan", description="No owner"))


@pytest.mark.anyio("asyncio")
async def test_delete_watchlist_removes_members_but_keeps_media(database: Database) -> None:
    watchlists = WatchlistRepository(database.session_factory)
    media = MediaRepository(database.session_factory)
    watchlist = await watchlists.sync(
        Watchlist(owner="me", members=["friend"], title="Movies", description="Weekend list")
    )
    item = await media.sync(
        Media(watchlist=watchlist.id, title="Alien", description="Sci-fi horror")
    )

    await watchlists.delete(watchlist)

    assert await watchlists.fetch_by_id(watchlist.id) is None
    assert await watchlists.list_shared_with("friend") == []
    assert await media.fetch_by_id(item.id) is not None


@pytest.mark.anyio("asyncio")
async def test_media_listing_and_update(database: Database) -> None:
    media = MediaRepository(database.session_factory)
    first = await media.sync(Media(watchlist="01WL", title="Alien", description="Sci-fi horror"))
    second = await media.sync(Media(watchlist="01WL", title="Aliens", description="The sequel"))
    await media.sync(Media(watchlist="01OTHER", title="Heat", description="Crime drama"))

    first.merge({"watched": True})
    await media.sync(first)

    listed = {item.id: item for item in await media.list_for_watchlist("01WL")}
    assert set(listed) == {first.id, second.id}
    assert listed[first.id].watched is True
    assert listed[second.id].watched is False


@pytest.mark.anyio("asyncio")
async def test_delete_without_id_is_a_no_op(database: Database) -> None:
    media = MediaRepository(database.session_factory)

    await media.delete(Media(watchlist="01WL", title="Alien", description="Sci-fi horror"))

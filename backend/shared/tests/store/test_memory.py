import asyncio

import pytest

from shared.store import DocumentNotFoundError, InMemoryDocumentStore, StoreError


@pytest.fixture
def store():
    return InMemoryDocumentStore()


async def _next(iterator):
    return await asyncio.wait_for(anext(iterator), timeout=1)


class TestReadWrite:
    async def test_get_missing_returns_none(self, store):
        assert await store.get("games/ABCD") is None

    async def test_set_merges_fields_by_default(self, store):
        await store.set("games/ABCD", {"started": True, "targetRounds": 6})
        await store.set("games/ABCD", {"nextRoundReady": True})

        assert await store.get("games/ABCD") == {"started": True, "targetRounds": 6, "nextRoundReady": True}

    async def test_set_without_merge_replaces_document(self, store):
        await store.set("games/ABCD", {"started": True, "targetRounds": 6})
        await store.set("games/ABCD", {"gameOver": True}, merge=False)

        assert await store.get("games/ABCD") == {"gameOver": True}

    async def test_returned_documents_are_copies(self, store):
        await store.set("games/ABCD/tables/0", {"playerIds": ["a", "b"]})

        document = await store.get("games/ABCD/tables/0")
        document["playerIds"].append("intruder")

        assert await store.get("games/ABCD/tables/0") == {"playerIds": ["a", "b"]}

    async def test_stored_fields_are_copies(self, store):
        dice = [1, 2, 3]
        await store.set("games/ABCD/tables/0", {"dice": dice})
        dice[0] = 6

        assert (await store.get("games/ABCD/tables/0"))["dice"] == [1, 2, 3]

    async def test_surrounding_slashes_are_ignored(self, store):
        await store.set("/games/ABCD/", {"started": True})

        assert await store.get("games/ABCD") == {"started": True}

    @pytest.mark.parametrize("path", ["", "/", "games//ABCD"])
    async def test_invalid_path_rejected(self, store, path):
        with pytest.raises(ValueError, match="Invalid document path"):
            await store.get(path)


class TestList:
    async def test_lists_direct_children_by_id(self, store):
        await store.set("games/ABCD/players/p1", {"name": "Ann"})
        await store.set("games/ABCD/players/p2", {"name": "Bo"})
        await store.set("games/ABCD", {"started": True})
        await store.set("games/WXYZ/players/p3", {"name": "Cy"})

        assert await store.list("games/ABCD/players") == {"p1": {"name": "Ann"}, "p2": {"name": "Bo"}}

    async def test_skips_nested_documents(self, store):
        await store.set("games/ABCD/tables/0", {"round": 1})
        await store.set("games/ABCD/tables/0/history/1", {"dice": [1, 1, 1]})

        assert list(await store.list("games/ABCD/tables")) == ["0"]

    async def test_empty_collection(self, store):
        assert await store.list("games/ABCD/players") == {}


class TestIncrement:
    async def test_adds_to_existing_value(self, store):
        await store.set("games/ABCD/players/p1", {"pointsThisRound": 3})
        await store.increment("games/ABCD/players/p1", "pointsThisRound", 2)

        assert (await store.get("games/ABCD/players/p1"))["pointsThisRound"] == 5

    async def test_missing_field_counts_as_zero(self, store):
        await store.set("games/ABCD/players/p1", {"name": "Ann"})
        await store.increment("games/ABCD/players/p1", "buncoCount", 1)

        assert (await store.get("games/ABCD/players/p1"))["buncoCount"] == 1

    async def test_missing_document_raises(self, store):
        with pytest.raises(DocumentNotFoundError) as exc_info:
            await store.increment("games/ABCD/players/ghost", "buncoCount", 1)

        assert isinstance(exc_info.value, StoreError)
        assert exc_info.value.path == "games/ABCD/players/ghost"

    async def test_concurrent_increments_are_not_lost(self, store):
        await store.set("games/ABCD/players/p1", {"pointsThisRound": 0})

        await asyncio.gather(*(store.increment("games/ABCD/players/p1", "pointsThisRound", 1) for _ in range(50)))

        assert (await store.get("games/ABCD/players/p1"))["pointsThisRound"] == 50


class TestSubscribe:
    async def test_yields_current_value_first(self, store):
        await store.set("games/ABCD", {"started": True})
        updates = store.subscribe("games/ABCD")

        assert await _next(updates) == {"started": True}
        await updates.aclose()

    async def test_yields_none_for_missing_document(self, store):
        updates = store.subscribe("games/ABCD")

        assert await _next(updates) is None
        await updates.aclose()

    async def test_yields_each_change(self, store):
        updates = store.subscribe("games/ABCD")
        await _next(updates)

        await store.set("games/ABCD", {"nextRoundReady": True})
        assert await _next(updates) == {"nextRoundReady": True}

        await store.increment("games/ABCD", "round", 1)
        assert await _next(updates) == {"nextRoundReady": True, "round": 1}
        await updates.aclose()

    async def test_slow_consumer_sees_latest_value(self, store):
        updates = store.subscribe("games/ABCD/tables/0")
        await _next(updates)

        for turn in range(4):
            await store.set("games/ABCD/tables/0", {"currentTurn": turn})

        assert await _next(updates) == {"currentTurn": 3}
        await updates.aclose()

    async def test_changes_to_other_documents_not_delivered(self, store):
        updates = store.subscribe("games/ABCD/tables/0")
        await _next(updates)

        await store.set("games/ABCD/tables/1", {"currentTurn": 1})

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(anext(updates), timeout=0.05)
        await updates.aclose()

    async def test_closing_removes_subscription(self, store):
        updates = store.subscribe("games/ABCD")
        await _next(updates)
        assert store.subscriber_count("games/ABCD") == 1

        await updates.aclose()

        assert store.subscriber_count("games/ABCD") == 0

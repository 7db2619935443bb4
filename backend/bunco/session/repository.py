"""Typed access to one match's documents in the shared store.

Documents are validated into models on every read; malformed single documents
raise MalformedDocumentError, malformed entries in a collection are logged and
skipped so one bad player cannot stall the whole match. Partial updates take
snake_case field names and are translated to the store's camelCase layout.
"""

from __future__ import annotations

from contextlib import aclosing
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import to_jsonable_python

from bunco.logic.exceptions import MalformedDocumentError
from bunco.logic.models import Game, Player, Table

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from shared.store import DocumentStore

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)


def game_path(code: str) -> str:
    return f"games/{code}"


def players_path(code: str) -> str:
    return f"games/{code}/players"


def player_path(code: str, player_id: str) -> str:
    return f"games/{code}/players/{player_id}"


def tables_path(code: str) -> str:
    return f"games/{code}/tables"


def table_path(code: str, table_id: int) -> str:
    return f"games/{code}/tables/{table_id}"


def _parse(model: type[ModelT], path: str, document: dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(document)
    except ValidationError as e:
        raise MalformedDocumentError(path=path, reason=str(e)) from e


def _to_fields(model: type[BaseModel], fields: dict[str, Any]) -> dict[str, Any]:
    """Translate snake_case model fields to a camelCase store update."""
    unknown = set(fields) - set(model.model_fields)
    if unknown:
        raise ValueError(f"Unknown {model.__name__} fields: {sorted(unknown)}")
    return {to_camel(name): to_jsonable_python(value, by_alias=True) for name, value in fields.items()}


class MatchRepository:
    """Read and write the game, player and table documents of one tournament code."""

    def __init__(self, store: DocumentStore, code: str) -> None:
        self._store = store
        self._code = code

    @property
    def code(self) -> str:
        return self._code

    # --- reads ---

    async def get_game(self) -> Game | None:
        path = game_path(self._code)
        document = await self._store.get(path)
        return _parse(Game, path, document) if document is not None else None

    async def get_table(self, table_id: int) -> Table | None:
        path = table_path(self._code, table_id)
        document = await self._store.get(path)
        return _parse(Table, path, document) if document is not None else None

    async def get_player(self, player_id: str) -> Player | None:
        path = player_path(self._code, player_id)
        document = await self._store.get(path)
        return _parse(Player, path, document) if document is not None else None

    async def list_players(self) -> list[Player]:
        documents = await self._store.list(players_path(self._code))
        players = []
        for doc_id, document in documents.items():
            document.setdefault("id", doc_id)
            try:
                players.append(_parse(Player, player_path(self._code, doc_id), document))
            except MalformedDocumentError as e:
                logger.warning("skipping malformed player document", path=e.path, reason=e.reason)
        return players

    async def list_tables(self) -> list[Table]:
        documents = await self._store.list(tables_path(self._code))
        tables = []
        for doc_id, document in documents.items():
            document.setdefault("id", int(doc_id))
            try:
                tables.append(_parse(Table, table_path(self._code, int(doc_id)), document))
            except MalformedDocumentError as e:
                logger.warning("skipping malformed table document", path=e.path, reason=e.reason)
        return sorted(tables, key=lambda t: t.id)

    # --- writes ---

    async def put_game(self, game: Game) -> None:
        await self._store.set(game_path(self._code), game.to_document(), merge=False)

    async def put_table(self, table: Table) -> None:
        await self._store.set(table_path(self._code, table.id), table.to_document(), merge=False)

    async def put_player(self, player: Player) -> None:
        await self._store.set(player_path(self._code, player.id), player.to_document(), merge=False)

    async def update_game(self, **fields: Any) -> None:
        await self._store.set(game_path(self._code), _to_fields(Game, fields))

    async def update_table(self, table_id: int, **fields: Any) -> None:
        await self._store.set(table_path(self._code, table_id), _to_fields(Table, fields))

    async def update_player(self, player_id: str, **fields: Any) -> None:
        await self._store.set(player_path(self._code, player_id), _to_fields(Player, fields))

    async def add_round_points(self, player_id: str, points: int) -> None:
        await self._store.increment(player_path(self._code, player_id), "pointsThisRound", points)

    async def add_bunco(self, player_id: str) -> None:
        await self._store.increment(player_path(self._code, player_id), "buncoCount", 1)

    # --- subscriptions ---

    async def watch_game(self) -> AsyncIterator[Game | None]:
        path = game_path(self._code)
        async with aclosing(self._store.subscribe(path)) as snapshots:
            async for document in snapshots:
                if document is None:
                    yield None
                    continue
                try:
                    yield _parse(Game, path, document)
                except MalformedDocumentError as e:
                    logger.warning("ignoring malformed game snapshot", path=e.path, reason=e.reason)

    async def watch_table(self, table_id: int) -> AsyncIterator[Table | None]:
        path = table_path(self._code, table_id)
        async with aclosing(self._store.subscribe(path)) as snapshots:
            async for document in snapshots:
                if document is None:
                    yield None
                    continue
                try:
                    yield _parse(Table, path, document)
                except MalformedDocumentError as e:
                    logger.warning("ignoring malformed table snapshot", path=e.path, reason=e.reason)

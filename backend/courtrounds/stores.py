"""Player and tournament persistence behind two narrow interfaces.

The progression engine only talks to ``PlayerStore`` and ``TournamentStore``.
Tournament writes are optimistic: ``save`` succeeds only when the stored
version still equals the version the caller read, otherwise it raises
``ConcurrentModification`` and the caller retries from a fresh read.

Player counters (rating, wins, losses) only ever change by a delta applied
atomically by the store, so two finished sets touching the same player both
land regardless of the order their writes arrive in.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_sessionmaker
from .exceptions import (
    ConcurrentModification,
    PlayerAlreadyExists,
    PlayerNotFound,
    TournamentAlreadyExists,
    TournamentNotFound,
)
from .models import Player as PlayerRow
from .models import Tournament as TournamentRow
from .schemas import PlayerRecord, TournamentDocument, decode_player, decode_tournament

logger = logging.getLogger(__name__)


class PlayerStore(Protocol):
    async def get(self, player_id: str) -> PlayerRecord: ...

    async def add(self, player: PlayerRecord) -> PlayerRecord: ...

    async def increment(
        self, player_id: str, *, wins: int = 0, losses: int = 0, rating: int = 0
    ) -> PlayerRecord: ...

    async def record_tournament(
        self, player_id: str, tournament_id: str
    ) -> PlayerRecord: ...


class TournamentStore(Protocol):
    async def get(self, tournament_id: str) -> TournamentDocument: ...

    async def create(self, doc: TournamentDocument) -> TournamentDocument: ...

    async def save(
        self, doc: TournamentDocument, expected_version: int
    ) -> TournamentDocument: ...

    async def list_for_player(
        self, player_id: str, *, completed: bool
    ) -> list[TournamentDocument]: ...

    async def list_open(self) -> list[TournamentDocument]: ...


# ---------------------------------------------------------------------------
# In-memory stores
# ---------------------------------------------------------------------------


class InMemoryPlayerStore:
    """Player records held as plain documents in a dict."""

    def __init__(self, players: Optional[list[PlayerRecord]] = None) -> None:
        self._lock = asyncio.Lock()
        self._records: dict[str, dict] = {}
        for player in players or []:
            self._records[player.id] = player.to_document()

    async def get(self, player_id: str) -> PlayerRecord:
        data = self._records.get(player_id)
        if data is None:
            raise PlayerNotFound(player_id)
        return decode_player(data)

    async def add(self, player: PlayerRecord) -> PlayerRecord:
        async with self._lock:
            if player.id in self._records:
                raise PlayerAlreadyExists(player.id)
            self._records[player.id] = player.to_document()
        return player

    async def increment(
        self, player_id: str, *, wins: int = 0, losses: int = 0, rating: int = 0
    ) -> PlayerRecord:
        async with self._lock:
            current = await self.get(player_id)
            updated = current.model_copy(
                update={
                    "wins": current.wins + wins,
                    "losses": current.losses + losses,
                    "rating": current.rating + rating,
                }
            )
            self._records[player_id] = updated.to_document()
        return updated

    async def record_tournament(
        self, player_id: str, tournament_id: str
    ) -> PlayerRecord:
        async with self._lock:
            current = await self.get(player_id)
            if tournament_id in current.tournament_history:
                return current
            updated = current.model_copy(
                update={"tournament_history": [*current.tournament_history, tournament_id]}
            )
            self._records[player_id] = updated.to_document()
        return updated


class InMemoryTournamentStore:
    """Tournament documents with compare-and-set versioning."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._documents: dict[str, dict] = {}

    async def get(self, tournament_id: str) -> TournamentDocument:
        data = self._documents.get(tournament_id)
        if data is None:
            raise TournamentNotFound(tournament_id)
        return decode_tournament(data)

    async def create(self, doc: TournamentDocument) -> TournamentDocument:
        async with self._lock:
            if doc.id in self._documents:
                raise TournamentAlreadyExists(doc.id)
            self._documents[doc.id] = doc.to_document()
        return doc

    async def save(
        self, doc: TournamentDocument, expected_version: int
    ) -> TournamentDocument:
        async with self._lock:
            stored = self._documents.get(doc.id)
            if stored is None:
                raise TournamentNotFound(doc.id)
            if stored.get("version") != expected_version:
                raise ConcurrentModification(doc.id, expected_version)
            saved = doc.model_copy(update={"version": expected_version + 1})
            self._documents[doc.id] = saved.to_document()
        return saved

    async def list_for_player(
        self, player_id: str, *, completed: bool
    ) -> list[TournamentDocument]:
        docs = [decode_tournament(data) for data in list(self._documents.values())]
        return [
            doc
            for doc in docs
            if doc.is_completed == completed and player_id in doc.registered_player_ids
        ]

    async def list_open(self) -> list[TournamentDocument]:
        docs = [decode_tournament(data) for data in list(self._documents.values())]
        return [doc for doc in docs if not doc.is_completed]


# ---------------------------------------------------------------------------
# SQLAlchemy stores
# ---------------------------------------------------------------------------


def _row_to_record(row: PlayerRow) -> PlayerRecord:
    return decode_player(
        {
            "id": row.id,
            "name": row.name,
            "rating": row.rating,
            "wins": row.wins,
            "losses": row.losses,
            "tournamentHistory": row.tournament_history or [],
        }
    )


class SqlPlayerStore:
    def __init__(
        self, session_factory: Optional[Callable[[], AsyncSession]] = None
    ) -> None:
        self._session_factory = session_factory

    def _session(self) -> AsyncSession:
        factory = self._session_factory or get_sessionmaker()
        return factory()

    async def get(self, player_id: str) -> PlayerRecord:
        async with self._session() as session:
            row = await session.get(PlayerRow, player_id)
            if row is None:
                raise PlayerNotFound(player_id)
            return _row_to_record(row)

    async def add(self, player: PlayerRecord) -> PlayerRecord:
        async with self._session() as session:
            if await session.get(PlayerRow, player.id) is not None:
                raise PlayerAlreadyExists(player.id)
            session.add(
                PlayerRow(
                    id=player.id,
                    name=player.name,
                    rating=player.rating,
                    wins=player.wins,
                    losses=player.losses,
                    tournament_history=list(player.tournament_history),
                )
            )
            await session.commit()
        return player

    async def increment(
        self, player_id: str, *, wins: int = 0, losses: int = 0, rating: int = 0
    ) -> PlayerRecord:
        async with self._session() as session:
            result = await session.execute(
                update(PlayerRow)
                .where(PlayerRow.id == player_id)
                .values(
                    wins=PlayerRow.wins + wins,
                    losses=PlayerRow.losses + losses,
                    rating=PlayerRow.rating + rating,
                )
            )
            if result.rowcount == 0:
                await session.rollback()
                raise PlayerNotFound(player_id)
            await session.commit()
            row = await session.get(PlayerRow, player_id, populate_existing=True)
            return _row_to_record(row)

    async def record_tournament(
        self, player_id: str, tournament_id: str
    ) -> PlayerRecord:
        async with self._session() as session:
            row = (
                await session.execute(
                    select(PlayerRow).where(PlayerRow.id == player_id).with_for_update()
                )
            ).scalar_one_or_none()
            if row is None:
                raise PlayerNotFound(player_id)
            history = list(row.tournament_history or [])
            if tournament_id not in history:
                # reassign so the JSON column is flagged dirty
                row.tournament_history = [*history, tournament_id]
                await session.commit()
            return _row_to_record(row)


class SqlTournamentStore:
    """Tournament documents stored as JSON with an optimistic version column."""

    def __init__(
        self, session_factory: Optional[Callable[[], AsyncSession]] = None
    ) -> None:
        self._session_factory = session_factory

    def _session(self) -> AsyncSession:
        factory = self._session_factory or get_sessionmaker()
        return factory()

    def _decode(self, row: TournamentRow) -> TournamentDocument:
        doc = decode_tournament(row.document)
        if doc.version != row.version:
            logger.warning(
                "Tournament %s document version %d differs from row version %d",
                row.id,
                doc.version,
                row.version,
            )
            doc = doc.model_copy(update={"version": row.version})
        return doc

    async def get(self, tournament_id: str) -> TournamentDocument:
        async with self._session() as session:
            row = (
                await session.execute(
                    select(TournamentRow).where(TournamentRow.id == tournament_id)
                )
            ).scalar_one_or_none()
            if row is None:
                raise TournamentNotFound(tournament_id)
            return self._decode(row)

    async def create(self, doc: TournamentDocument) -> TournamentDocument:
        async with self._session() as session:
            if await session.get(TournamentRow, doc.id) is not None:
                raise TournamentAlreadyExists(doc.id)
            session.add(
                TournamentRow(
                    id=doc.id,
                    version=doc.version,
                    is_completed=doc.is_completed,
                    document=doc.to_document(),
                )
            )
            await session.commit()
        return doc

    async def save(
        self, doc: TournamentDocument, expected_version: int
    ) -> TournamentDocument:
        saved = doc.model_copy(update={"version": expected_version + 1})
        async with self._session() as session:
            result = await session.execute(
                update(TournamentRow)
                .where(
                    TournamentRow.id == doc.id,
                    TournamentRow.version == expected_version,
                )
                .values(
                    version=saved.version,
                    is_completed=saved.is_completed,
                    document=saved.to_document(),
                )
            )
            if result.rowcount != 1:
                await session.rollback()
                exists = await session.get(TournamentRow, doc.id)
                if exists is None:
                    raise TournamentNotFound(doc.id)
                raise ConcurrentModification(doc.id, expected_version)
            await session.commit()
        return saved

    async def _list(self, *, completed: bool) -> list[TournamentDocument]:
        async with self._session() as session:
            rows = (
                await session.execute(
                    select(TournamentRow).where(TournamentRow.is_completed == completed)
                )
            ).scalars()
            return [self._decode(row) for row in rows]

    async def list_for_player(
        self, player_id: str, *, completed: bool
    ) -> list[TournamentDocument]:
        docs = await self._list(completed=completed)
        return [doc for doc in docs if player_id in doc.registered_player_ids]

    async def list_open(self) -> list[TournamentDocument]:
        return await self._list(completed=False)

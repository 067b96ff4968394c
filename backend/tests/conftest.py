import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from courtrounds.schemas import PlayerRecord  # noqa: E402
from courtrounds.services import EventChannel, RoundProgressionController  # noqa: E402
from courtrounds.stores import InMemoryPlayerStore, InMemoryTournamentStore  # noqa: E402

# Honour any externally provided DATABASE_URL but fall back to an in-memory
# SQLite database so local runs remain isolated.
DEFAULT_DB_URL = os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")


@pytest.fixture
def anyio_backend():
    return "asyncio"


def make_players(*ratings: int, prefix: str = "p") -> list[PlayerRecord]:
    """Players ``p1``, ``p2``... with the given ratings."""

    return [
        PlayerRecord(id=f"{prefix}{index}", name=f"Player {index}", rating=rating)
        for index, rating in enumerate(ratings, start=1)
    ]


class RecordingChannel(EventChannel):
    """Event channel that keeps every published event."""

    def __init__(self) -> None:
        super().__init__()
        self.published = []

    async def publish(self, event) -> None:
        self.published.append(event)
        await super().publish(event)

    def kinds(self) -> list[str]:
        return [event.kind.value for event in self.published]


@pytest.fixture
def player_store():
    return InMemoryPlayerStore(make_players(*([1000] * 12)))


@pytest.fixture
def tournament_store():
    return InMemoryTournamentStore()


@pytest.fixture
def events():
    return RecordingChannel()


@pytest.fixture
def controller(tournament_store, player_store, events):
    return RoundProgressionController(
        tournaments=tournament_store, players=player_store, events=events
    )

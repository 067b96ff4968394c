"""Process-wide wiring of stores, the event channel and the controller."""

from typing import Optional

from .services import EventChannel, RoundProgressionController
from .stores import PlayerStore, SqlPlayerStore, SqlTournamentStore

event_channel = EventChannel()

_controller: Optional[RoundProgressionController] = None


def get_controller() -> RoundProgressionController:
    """Provide the progression controller for FastAPI dependencies."""

    global _controller

    if _controller is None:
        _controller = RoundProgressionController(
            tournaments=SqlTournamentStore(),
            players=SqlPlayerStore(),
            events=event_channel,
        )
    return _controller


def get_player_store() -> PlayerStore:
    return get_controller().players

"""Tournament progression services."""

from .events import EventChannel, EventKind, TournamentEvent, parse_event_kind
from .pairing import generate_round
from .progression import (
    RoundProgressionController,
    tournament_state,
    validate_configuration,
    validate_score,
)
from .rating import expected_score, k_factor, update_ratings
from .standings import FinalResult, PlayerStanding, finalize

__all__ = [
    "EventChannel",
    "EventKind",
    "TournamentEvent",
    "parse_event_kind",
    "generate_round",
    "RoundProgressionController",
    "tournament_state",
    "validate_configuration",
    "validate_score",
    "expected_score",
    "k_factor",
    "update_ratings",
    "FinalResult",
    "PlayerStanding",
    "finalize",
]

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from .config import DEFAULT_GAMES_PER_SET, DEFAULT_NUMBER_OF_ROUNDS, DEFAULT_RATING
from .exceptions import MalformedRecord, ProblemDetail
from .time_utils import coerce_utc, require_utc, utcnow


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class ByePolicy(str, Enum):
    """What happens to players left without a court in a round."""

    SIT_OUT = "sit_out"
    CREDIT = "credit"


class TournamentState(str, Enum):
    REGISTERING = "registering"
    ROUND_IN_PROGRESS = "round_in_progress"
    ROUND_COMPLETE = "round_complete"
    COMPLETED = "completed"


class _Document(BaseModel):
    """Base for stored records: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PlayerRecord(_Document):
    id: str = Field(..., min_length=1)
    name: str = ""
    rating: int = DEFAULT_RATING
    wins: int = Field(default=0, ge=0)
    losses: int = Field(default=0, ge=0)
    # tournaments the player created or registered for, oldest first
    tournament_history: List[str] = Field(default_factory=list)

    @property
    def games_played(self) -> int:
        return self.wins + self.losses


class TeamDocument(_Document):
    id: str
    player_ids: List[str]
    games_won: int = Field(default=0, ge=0)

    @field_validator("player_ids")
    @classmethod
    def _two_distinct_players(cls, value: List[str]) -> List[str]:
        if len(value) != 2:
            raise ValueError("a team must have exactly two players")
        if value[0] == value[1]:
            raise ValueError("team players must be distinct")
        return value


class SetDocument(_Document):
    id: str
    round_number: int = Field(..., ge=1)
    court_number: str
    teams: List[TeamDocument]
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("teams")
    @classmethod
    def _two_teams(cls, value: List[TeamDocument]) -> List[TeamDocument]:
        if len(value) != 2:
            raise ValueError("a set must have exactly two teams")
        return value

    @field_validator("completed_at", "created_at")
    @classmethod
    def _normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return coerce_utc(value)

    @property
    def player_ids(self) -> List[str]:
        return [pid for team in self.teams for pid in team.player_ids]

    @property
    def winning_team(self) -> Optional[TeamDocument]:
        """Team with strictly more games, ``None`` while open or tied."""
        if not self.is_completed:
            return None
        first, second = self.teams
        if first.games_won > second.games_won:
            return first
        if second.games_won > first.games_won:
            return second
        return None

    @property
    def score_string(self) -> str:
        return f"{self.teams[0].games_won} - {self.teams[1].games_won}"


class RoundDocument(_Document):
    round_number: int = Field(..., ge=1)
    sets: List[SetDocument] = Field(default_factory=list)
    byes: List[str] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return all(s.is_completed for s in self.sets)


class TournamentDocument(_Document):
    id: str = Field(..., min_length=1)
    name: str = ""
    creator_id: Optional[str] = None
    location: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    court_numbers: List[str]
    registered_player_ids: List[str] = Field(default_factory=list)
    max_players: int = Field(..., ge=1)
    number_of_rounds: int = Field(..., ge=1)
    games_per_set: int = Field(default=DEFAULT_GAMES_PER_SET, ge=1)
    tie_break: bool = True
    visibility: Visibility = Visibility.PUBLIC
    invite_code: Optional[str] = None
    bye_policy: ByePolicy = ByePolicy.SIT_OUT
    bye_points: int = Field(default=0, ge=0)
    registration_closed: bool = False
    is_completed: bool = False
    rounds: List[RoundDocument] = Field(default_factory=list)
    top_performers: List[str] = Field(default_factory=list, max_length=3)
    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_invariants(self) -> "TournamentDocument":
        if len(set(self.registered_player_ids)) != len(self.registered_player_ids):
            raise ValueError("registered player ids must be unique")
        if len(self.registered_player_ids) > self.max_players:
            raise ValueError("registered players exceed capacity")
        for expected, rnd in enumerate(self.rounds, start=1):
            if rnd.round_number != expected:
                raise ValueError("round numbers must be contiguous from 1")
            if any(s.round_number != expected for s in rnd.sets):
                raise ValueError("set round number does not match its round")
        if len(self.rounds) > self.number_of_rounds:
            raise ValueError("more rounds than configured")
        return self

    @property
    def is_registration_full(self) -> bool:
        return len(self.registered_player_ids) >= self.max_players

    @property
    def current_round(self) -> int:
        for rnd in self.rounds:
            if not rnd.is_complete:
                return rnd.round_number
        return len(self.rounds) + 1

    def iter_sets(self) -> Iterator[SetDocument]:
        for rnd in self.rounds:
            yield from rnd.sets

    def completed_sets(self) -> List[SetDocument]:
        return [s for s in self.iter_sets() if s.is_completed]

    def find_set(self, set_id: str) -> Optional[SetDocument]:
        for s in self.iter_sets():
            if s.id == set_id:
                return s
        return None

    def bye_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for rnd in self.rounds:
            for pid in rnd.byes:
                counts[pid] = counts.get(pid, 0) + 1
        return counts


def _decode(model: type[_Document], kind: str, data: Any):
    record_id = data.get("id") if isinstance(data, Mapping) else None
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise MalformedRecord(kind, record_id, str(exc)) from exc


def decode_tournament(data: Any) -> TournamentDocument:
    """Validate a stored tournament document, raising ``MalformedRecord``."""

    return _decode(TournamentDocument, "tournament", data)


def decode_player(data: Any) -> PlayerRecord:
    """Validate a stored player record, raising ``MalformedRecord``."""

    return _decode(PlayerRecord, "player", data)


# ---------------------------------------------------------------------------
# Request / response bodies
# ---------------------------------------------------------------------------


class PlayerCreate(BaseModel):
    id: Optional[str] = Field(default=None, min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=50)
    rating: Optional[int] = None

    @field_validator("name", mode="before")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not isinstance(value, str):
            raise PydanticCustomError("invalid_player_name", "name must be a string")
        trimmed = value.strip()
        if not trimmed:
            raise PydanticCustomError("invalid_player_name", "name must not be empty")
        return trimmed


class TournamentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    creator_id: Optional[str] = Field(default=None, alias="creatorId")
    location: Optional[str] = None
    scheduled_at: Optional[datetime] = Field(default=None, alias="scheduledAt")
    court_numbers: List[str] = Field(..., alias="courtNumbers")
    max_players: int = Field(..., alias="maxPlayers")
    number_of_rounds: int = Field(
        default=DEFAULT_NUMBER_OF_ROUNDS, alias="numberOfRounds"
    )
    games_per_set: int = Field(default=DEFAULT_GAMES_PER_SET, alias="gamesPerSet")
    tie_break: bool = Field(default=True, alias="tieBreak")
    visibility: Visibility = Visibility.PUBLIC
    invite_code: Optional[str] = Field(default=None, alias="inviteCode")
    bye_policy: ByePolicy = Field(default=ByePolicy.SIT_OUT, alias="byePolicy")
    bye_points: int = Field(default=0, alias="byePoints")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @field_validator("scheduled_at")
    @classmethod
    def _require_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return require_utc(value, field_name="scheduledAt")


class RegistrationRequest(BaseModel):
    player_id: str = Field(..., alias="playerId", min_length=1)
    invite_code: Optional[str] = Field(default=None, alias="inviteCode")

    model_config = ConfigDict(populate_by_name=True)


class ScoreSubmission(BaseModel):
    team1_games: int = Field(..., alias="team1Games")
    team2_games: int = Field(..., alias="team2Games")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("team1_games", "team2_games", mode="before")
    @classmethod
    def _reject_booleans(cls, value: Any) -> Any:
        # bool is a subclass of int
        if isinstance(value, bool):
            raise PydanticCustomError(
                "invalid_score", "scores must be integers (not booleans)"
            )
        return value


class TournamentStateOut(BaseModel):
    tournament: TournamentDocument
    state: TournamentState
    current_round: int = Field(alias="currentRound")

    model_config = ConfigDict(populate_by_name=True)


class PlayerStandingOut(BaseModel):
    player_id: str = Field(alias="playerId")
    wins: int
    points: int
    sets_played: int = Field(alias="setsPlayed")
    byes: int = 0

    model_config = ConfigDict(populate_by_name=True)


class StandingsOut(BaseModel):
    tournament_id: str = Field(alias="tournamentId")
    is_final: bool = Field(alias="isFinal")
    standings: List[PlayerStandingOut]
    winners: List[str]
    top_performers: List[str] = Field(alias="topPerformers")

    model_config = ConfigDict(populate_by_name=True)


class ScoreOutcome(BaseModel):
    tournament: TournamentDocument
    state: TournamentState
    scored_set: SetDocument = Field(alias="set")
    ratings: List[PlayerRecord] = Field(default_factory=list)
    advance_error: Optional[ProblemDetail] = Field(default=None, alias="advanceError")

    model_config = ConfigDict(populate_by_name=True)


class PlayerTournamentsOut(BaseModel):
    """A player's tournament overview, split by where each one stands."""

    player_id: str = Field(alias="playerId")
    upcoming: List[TournamentDocument] = Field(default_factory=list)
    ongoing: List[TournamentDocument] = Field(default_factory=list)
    past: List[TournamentDocument] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

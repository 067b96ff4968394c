from pydantic import BaseModel
from typing import Optional


class ProblemDetail(BaseModel):
    """RFC 7807 compliant error response."""

    type: str = "about:blank"
    title: str
    detail: Optional[str] = None
    status: int
    instance: Optional[str] = None
    code: str


class DomainException(Exception):
    """Base class for domain-specific exceptions."""

    retryable = False

    def __init__(
        self,
        status_code: int,
        title: str,
        *,
        code: str,
        detail: str | None = None,
        type_: str = "about:blank",
    ) -> None:
        super().__init__(detail or title)
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type = type_
        self.code = code

    def to_problem(self) -> ProblemDetail:
        return ProblemDetail(
            type=self.type,
            title=self.title,
            detail=self.detail,
            status=self.status_code,
            code=self.code,
        )


class InsufficientPlayers(DomainException):
    def __init__(self, players: int, courts: int) -> None:
        super().__init__(
            status_code=409,
            title="Insufficient players",
            detail=(
                f"cannot pair {players} players on {courts} courts; "
                "at least four players and one court per four players are required"
            ),
            code="insufficient_players",
        )
        self.players = players
        self.courts = courts


class UnknownSet(DomainException):
    def __init__(self, set_id: str) -> None:
        super().__init__(
            status_code=404,
            title="Set not found",
            detail=f"set '{set_id}' not found",
            code="unknown_set",
        )
        self.set_id = set_id


class SetNotInCurrentRound(DomainException):
    def __init__(self, set_id: str, round_number: int, current_round: int) -> None:
        super().__init__(
            status_code=409,
            title="Set not in current round",
            detail=(
                f"set '{set_id}' belongs to round {round_number}, "
                f"current round is {current_round}"
            ),
            code="set_not_in_current_round",
        )
        self.set_id = set_id


class SetAlreadyCompleted(DomainException):
    def __init__(self, set_id: str) -> None:
        super().__init__(
            status_code=409,
            title="Set already completed",
            detail=f"set '{set_id}' already has a final score",
            code="set_already_completed",
        )
        self.set_id = set_id


class TournamentAlreadyComplete(DomainException):
    def __init__(self, tournament_id: str) -> None:
        super().__init__(
            status_code=409,
            title="Tournament already complete",
            detail=f"tournament '{tournament_id}' is finalized",
            code="tournament_already_complete",
        )


class ConcurrentModification(DomainException):
    """Raised when a stored document changed between read and write."""

    retryable = True

    def __init__(self, tournament_id: str, expected_version: int) -> None:
        super().__init__(
            status_code=409,
            title="Concurrent modification",
            detail=(
                f"tournament '{tournament_id}' changed since version "
                f"{expected_version}; reload and retry"
            ),
            code="concurrent_modification",
        )
        self.expected_version = expected_version


class InvalidConfiguration(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=422,
            title="Invalid configuration",
            detail=detail,
            code="invalid_configuration",
        )


class InvalidScore(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=422,
            title="Invalid score",
            detail=detail,
            code="invalid_score",
        )


class InvalidTransition(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=409,
            title="Invalid transition",
            detail=detail,
            code="invalid_transition",
        )


class MalformedRecord(DomainException):
    def __init__(self, kind: str, record_id: str | None, detail: str) -> None:
        label = f"{kind} '{record_id}'" if record_id else kind
        super().__init__(
            status_code=500,
            title="Malformed record",
            detail=f"{label} failed validation: {detail}",
            code="malformed_record",
        )
        self.kind = kind
        self.record_id = record_id


class TournamentNotFound(DomainException):
    def __init__(self, tournament_id: str) -> None:
        super().__init__(
            status_code=404,
            title="Tournament not found",
            detail=f"tournament '{tournament_id}' not found",
            code="tournament_not_found",
        )


class TournamentAlreadyExists(DomainException):
    def __init__(self, tournament_id: str) -> None:
        super().__init__(
            status_code=409,
            title="Tournament exists",
            detail=f"tournament '{tournament_id}' already exists",
            code="tournament_exists",
        )


class PlayerAlreadyExists(DomainException):
    def __init__(self, player_id: str) -> None:
        super().__init__(
            status_code=400,
            title="Player exists",
            detail=f"player '{player_id}' already exists",
            code="player_exists",
        )


class PlayerNotFound(DomainException):
    def __init__(self, player_id: str) -> None:
        super().__init__(
            status_code=404,
            title="Player not found",
            detail=f"player '{player_id}' not found",
            code="player_not_found",
        )


class PlayerAlreadyRegistered(DomainException):
    def __init__(self, player_id: str) -> None:
        super().__init__(
            status_code=409,
            title="Player already registered",
            detail=f"player '{player_id}' is already registered",
            code="player_already_registered",
        )


class TournamentFull(DomainException):
    def __init__(self, max_players: int) -> None:
        super().__init__(
            status_code=409,
            title="Tournament full",
            detail=f"tournament already has {max_players} players",
            code="tournament_full",
        )


class RegistrationClosed(DomainException):
    def __init__(self, tournament_id: str) -> None:
        super().__init__(
            status_code=409,
            title="Registration closed",
            detail=f"registration for tournament '{tournament_id}' is closed",
            code="registration_closed",
        )


class InvalidInviteCode(DomainException):
    def __init__(self) -> None:
        super().__init__(
            status_code=403,
            title="Invalid invite code",
            detail="invite code does not match this private tournament",
            code="invalid_invite_code",
        )


class UnknownEventKind(DomainException):
    def __init__(self, value: object) -> None:
        super().__init__(
            status_code=422,
            title="Unknown event kind",
            detail=f"unknown event kind {value!r}",
            code="unknown_event_kind",
        )


# Custom pydantic error types that double as problem codes for request bodies.
REQUEST_ERROR_CODES = frozenset({"invalid_score", "invalid_player_name"})

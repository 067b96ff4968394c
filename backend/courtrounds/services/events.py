"""Notifications published after every tournament transition."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field, field_validator

from ..exceptions import UnknownEventKind
from ..time_utils import utcnow

LOGGER = logging.getLogger(__name__)


class EventKind(str, Enum):
    NEW_PAIRING = "new_pairing"
    SCORE_SUBMISSION = "score_submission"
    MATCH_COMPLETION = "match_completion"


def parse_event_kind(value: Any) -> EventKind:
    """Return the matching ``EventKind`` or raise ``UnknownEventKind``."""

    if isinstance(value, EventKind):
        return value
    try:
        return EventKind(value)
    except ValueError as exc:
        raise UnknownEventKind(value) from exc


class TournamentEvent(BaseModel):
    kind: EventKind
    tournament_id: str = Field(alias="tournamentId")
    round_number: int | None = Field(default=None, alias="roundNumber")
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=lambda: utcnow().isoformat(), alias="createdAt")

    model_config = {"populate_by_name": True}

    @field_validator("kind", mode="before")
    @classmethod
    def _closed_kind(cls, value: Any) -> EventKind:
        return parse_event_kind(value)

    @property
    def title(self) -> str:
        if self.kind is EventKind.NEW_PAIRING:
            return f"Round {self.round_number} pairings are ready"
        if self.kind is EventKind.SCORE_SUBMISSION:
            return "New score submitted"
        if self.kind is EventKind.MATCH_COMPLETION:
            return "Tournament complete"
        raise UnknownEventKind(self.kind)

    def to_message(self) -> dict[str, Any]:
        message = self.model_dump(mode="json", by_alias=True)
        message["title"] = self.title
        return message


Subscriber = Callable[[TournamentEvent], Awaitable[None]]


class EventChannel:
    """Fan out tournament events to explicitly registered subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    async def publish(self, event: TournamentEvent) -> None:
        if not self._subscribers:
            return
        results = await asyncio.gather(
            *(subscriber(event) for subscriber in list(self._subscribers)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                LOGGER.error(
                    "Event subscriber failed for %s on tournament %s",
                    event.kind.value,
                    event.tournament_id,
                    exc_info=(type(result), result, result.__traceback__),
                )

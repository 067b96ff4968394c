"""Tournament progression: registration, score entry, rounds and finalization.

``RoundProgressionController`` is the only component that mutates a
tournament. Every operation reads the tournament document, validates the
request against it, builds the next document on a deep copy and writes it
back with a single optimistic ``save``. A rejected request therefore never
leaves a partial write behind, and two concurrent submissions that would
both close the same round cannot both succeed: the second one gets
``ConcurrentModification`` and must retry from a fresh read.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Iterable, Optional, Sequence

from ..exceptions import (
    DomainException,
    InvalidConfiguration,
    InvalidInviteCode,
    InvalidScore,
    InvalidTransition,
    PlayerAlreadyRegistered,
    RegistrationClosed,
    SetAlreadyCompleted,
    SetNotInCurrentRound,
    TournamentAlreadyComplete,
    TournamentFull,
    UnknownSet,
)
from ..schemas import (
    ByePolicy,
    PlayerRecord,
    PlayerStandingOut,
    PlayerTournamentsOut,
    ScoreOutcome,
    SetDocument,
    StandingsOut,
    TournamentCreate,
    TournamentDocument,
    TournamentState,
    TournamentStateOut,
    Visibility,
)
from ..stores import PlayerStore, TournamentStore
from ..time_utils import coerce_utc, utcnow
from .events import EventChannel, EventKind, TournamentEvent
from .pairing import PLAYERS_PER_COURT, generate_round
from .rating import update_ratings
from .standings import FinalResult, finalize

logger = logging.getLogger(__name__)

# completed tournaments listed per player, most recent first
PAST_TOURNAMENTS_LIMIT = 10


def tournament_state(doc: TournamentDocument) -> TournamentState:
    """Derive the state machine position from a tournament document."""

    if doc.is_completed:
        return TournamentState.COMPLETED
    if not doc.rounds:
        return TournamentState.REGISTERING
    if doc.current_round <= len(doc.rounds):
        return TournamentState.ROUND_IN_PROGRESS
    return TournamentState.ROUND_COMPLETE


def validate_configuration(body: TournamentCreate) -> None:
    """Reject tournament settings the engine cannot run."""

    if body.number_of_rounds < 1:
        raise InvalidConfiguration("numberOfRounds must be at least 1")
    if body.max_players < PLAYERS_PER_COURT:
        raise InvalidConfiguration(
            f"maxPlayers must be at least {PLAYERS_PER_COURT}"
        )
    if body.games_per_set < 1:
        raise InvalidConfiguration("gamesPerSet must be at least 1")
    if body.bye_points < 0:
        raise InvalidConfiguration("byePoints must be >= 0")

    courts = [c.strip() for c in body.court_numbers]
    if not courts or any(not c for c in courts):
        raise InvalidConfiguration("courtNumbers must contain non-empty labels")
    if len(set(courts)) != len(courts):
        raise InvalidConfiguration("courtNumbers must be unique")
    if len(courts) < body.max_players // PLAYERS_PER_COURT:
        raise InvalidConfiguration(
            f"{body.max_players} players need at least "
            f"{body.max_players // PLAYERS_PER_COURT} courts"
        )

    if body.visibility is Visibility.PRIVATE and not (body.invite_code or "").strip():
        raise InvalidConfiguration("private tournaments require an inviteCode")


def validate_score(doc: TournamentDocument, team1_games: int, team2_games: int) -> None:
    """Check a submitted set score against the tournament's scoring rules.

    Rules:
    - both scores are integers >= 0
    - neither side exceeds ``games_per_set + 1`` (a set decided 7-5 or 7-6)
    - with tie-break scoring a set cannot end level
    """

    if team1_games < 0 or team2_games < 0:
        raise InvalidScore("scores must be >= 0")
    max_games = doc.games_per_set + 1
    if team1_games > max_games or team2_games > max_games:
        raise InvalidScore(f"scores must be <= {max_games}")
    if doc.tie_break and team1_games == team2_games:
        raise InvalidScore("a set cannot end level when tie-break scoring is enabled")


def _standings_out(doc: TournamentDocument, result: FinalResult) -> StandingsOut:
    return StandingsOut(
        tournament_id=doc.id,
        is_final=doc.is_completed,
        standings=[
            PlayerStandingOut(
                player_id=pid,
                wins=result.stats[pid].wins,
                points=result.stats[pid].points,
                sets_played=result.stats[pid].sets_played,
                byes=result.stats[pid].byes,
            )
            for pid in result.ranking
        ],
        winners=result.winners,
        top_performers=result.top_performers,
    )


class RoundProgressionController:
    """Drive tournaments through registration, rounds and finalization."""

    def __init__(
        self,
        tournaments: TournamentStore,
        players: PlayerStore,
        events: Optional[EventChannel] = None,
    ) -> None:
        self.tournaments = tournaments
        self.players = players
        self.events = events or EventChannel()

    # ========== Queries ==========

    async def get_state(self, tournament_id: str) -> TournamentStateOut:
        doc = await self.tournaments.get(tournament_id)
        return TournamentStateOut(
            tournament=doc,
            state=tournament_state(doc),
            current_round=doc.current_round,
        )

    async def standings(self, tournament_id: str) -> StandingsOut:
        doc = await self.tournaments.get(tournament_id)
        return _standings_out(doc, self._aggregate(doc))

    async def tournaments_for_player(
        self, player_id: str, *, now: Optional[datetime] = None
    ) -> PlayerTournamentsOut:
        """Split a player's tournaments into upcoming, ongoing and past.

        Upcoming lists every open tournament scheduled after ``now``, so a
        player can find one to join. Ongoing and past only include
        tournaments the player is registered for; past keeps the
        ``PAST_TOURNAMENTS_LIMIT`` most recent.
        """

        await self.players.get(player_id)
        now = coerce_utc(now) if now else utcnow()

        open_docs = await self.tournaments.list_open()
        upcoming = sorted(
            (d for d in open_docs if d.scheduled_at and coerce_utc(d.scheduled_at) > now),
            key=lambda d: coerce_utc(d.scheduled_at),
        )
        ongoing = [
            d
            for d in await self.tournaments.list_for_player(player_id, completed=False)
            if d.scheduled_at is None or coerce_utc(d.scheduled_at) <= now
        ]
        past = sorted(
            await self.tournaments.list_for_player(player_id, completed=True),
            key=lambda d: coerce_utc(d.scheduled_at or d.created_at),
            reverse=True,
        )[:PAST_TOURNAMENTS_LIMIT]
        return PlayerTournamentsOut(
            player_id=player_id, upcoming=upcoming, ongoing=ongoing, past=past
        )

    # ========== Registration ==========

    async def create_tournament(
        self, body: TournamentCreate, *, tournament_id: Optional[str] = None
    ) -> TournamentDocument:
        validate_configuration(body)

        registered: list[str] = []
        if body.creator_id:
            await self.players.get(body.creator_id)
            registered.append(body.creator_id)

        doc = TournamentDocument(
            id=tournament_id or uuid.uuid4().hex,
            name=body.name.strip(),
            creator_id=body.creator_id,
            location=body.location,
            scheduled_at=body.scheduled_at,
            court_numbers=[c.strip() for c in body.court_numbers],
            registered_player_ids=registered,
            max_players=body.max_players,
            number_of_rounds=body.number_of_rounds,
            games_per_set=body.games_per_set,
            tie_break=body.tie_break,
            visibility=body.visibility,
            invite_code=(
                body.invite_code.strip()
                if body.visibility is Visibility.PRIVATE and body.invite_code
                else None
            ),
            bye_policy=body.bye_policy,
            bye_points=body.bye_points,
        )
        created = await self.tournaments.create(doc)
        if created.creator_id:
            await self.players.record_tournament(created.creator_id, created.id)
        logger.info(
            "Created tournament %s: %d players, %d rounds, %d courts",
            created.id,
            created.max_players,
            created.number_of_rounds,
            len(created.court_numbers),
        )
        return created

    async def register_player(
        self,
        tournament_id: str,
        player_id: str,
        invite_code: Optional[str] = None,
    ) -> TournamentDocument:
        """Add ``player_id`` to the roster; a full roster starts round 1."""

        doc = await self.tournaments.get(tournament_id)
        if doc.is_completed:
            raise TournamentAlreadyComplete(doc.id)
        if doc.registration_closed or doc.rounds:
            raise RegistrationClosed(doc.id)
        if player_id in doc.registered_player_ids:
            raise PlayerAlreadyRegistered(player_id)
        if doc.is_registration_full:
            raise TournamentFull(doc.max_players)
        if doc.visibility is Visibility.PRIVATE and invite_code != doc.invite_code:
            raise InvalidInviteCode()
        await self.players.get(player_id)

        working = doc.model_copy(deep=True)
        working.registered_player_ids.append(player_id)

        paired = False
        if working.is_registration_full:
            try:
                await self._start(working)
                paired = True
            except DomainException as exc:
                logger.warning(
                    "Tournament %s is full but round 1 could not be paired: %s",
                    doc.id,
                    exc.detail,
                )

        saved = await self.tournaments.save(working, doc.version)
        await self.players.record_tournament(player_id, saved.id)
        logger.info(
            "Registered player %s for tournament %s (%d/%d)",
            player_id,
            saved.id,
            len(saved.registered_player_ids),
            saved.max_players,
        )
        if paired:
            await self._publish_pairing(saved)
        return saved

    async def close_registration(self, tournament_id: str) -> TournamentDocument:
        """Operator trigger: stop registration and pair round 1."""

        doc = await self.tournaments.get(tournament_id)
        if doc.is_completed:
            raise TournamentAlreadyComplete(doc.id)
        if doc.rounds:
            raise RegistrationClosed(doc.id)

        working = doc.model_copy(deep=True)
        await self._start(working)
        saved = await self.tournaments.save(working, doc.version)
        await self._publish_pairing(saved)
        return saved

    # ========== Scores ==========

    async def submit_score(
        self,
        tournament_id: str,
        set_id: str,
        team1_games: int,
        team2_games: int,
    ) -> ScoreOutcome:
        """Record the final score of one set and advance the tournament.

        The score, the next round (or the final result) and the completion
        flag are written together. When the round is complete but the next
        one cannot be paired, the score is still recorded, the tournament
        stays in ``round_complete`` and the failure is reported as
        ``advance_error``; ``advance`` retries it.
        """

        doc = await self.tournaments.get(tournament_id)
        if doc.is_completed:
            raise TournamentAlreadyComplete(doc.id)
        target = doc.find_set(set_id)
        if target is None:
            raise UnknownSet(set_id)
        if target.is_completed:
            raise SetAlreadyCompleted(set_id)
        current = doc.current_round
        if target.round_number != current:
            raise SetNotInCurrentRound(set_id, target.round_number, current)
        validate_score(doc, team1_games, team2_games)

        team1, team2 = target.teams
        participants = await self._load_players([*team1.player_ids, *team2.player_ids])
        by_id = {p.id: p for p in participants}
        ratings = update_ratings(
            [by_id[pid] for pid in team1.player_ids],
            [by_id[pid] for pid in team2.player_ids],
            team1_games,
            team2_games,
        )

        working = doc.model_copy(deep=True)
        scored = working.find_set(set_id)
        scored.teams[0].games_won = team1_games
        scored.teams[1].games_won = team2_games
        scored.is_completed = True
        scored.completed_at = utcnow()

        advance_error = None
        transition: Optional[EventKind] = None
        result: Optional[FinalResult] = None
        if working.rounds[scored.round_number - 1].is_complete:
            try:
                transition, result = await self._advance(working, ratings)
            except DomainException as exc:
                logger.warning(
                    "Tournament %s round %d complete but could not advance: %s",
                    doc.id,
                    scored.round_number,
                    exc.detail,
                )
                advance_error = exc.to_problem()

        saved = await self.tournaments.save(working, doc.version)
        logger.info(
            "Tournament %s set %s (round %d, court %s) finished %s",
            saved.id,
            set_id,
            scored.round_number,
            scored.court_number,
            scored.score_string,
        )

        # Deltas against the ratings read above; the store applies them atomically.
        stored = await asyncio.gather(
            *(
                self.players.increment(p.id, rating=p.rating - by_id[p.id].rating)
                for p in ratings
            )
        )
        if result is not None:
            await self._credit_results(saved, result)

        await self.events.publish(
            TournamentEvent(
                kind=EventKind.SCORE_SUBMISSION,
                tournament_id=saved.id,
                round_number=scored.round_number,
                payload={
                    "setId": set_id,
                    "courtNumber": scored.court_number,
                    "score": [team1_games, team2_games],
                },
            )
        )
        await self._publish_transition(saved, transition, result)

        return ScoreOutcome(
            tournament=saved,
            state=tournament_state(saved),
            scored_set=saved.find_set(set_id),
            ratings=list(stored),
            advance_error=advance_error,
        )

    async def advance(self, tournament_id: str) -> TournamentDocument:
        """Retry a round transition that previously failed."""

        doc = await self.tournaments.get(tournament_id)
        state = tournament_state(doc)
        if state is TournamentState.COMPLETED:
            raise TournamentAlreadyComplete(doc.id)
        if state is not TournamentState.ROUND_COMPLETE:
            raise InvalidTransition(
                f"tournament '{doc.id}' is {state.value}; only a completed round can advance"
            )

        working = doc.model_copy(deep=True)
        transition, result = await self._advance(working, [])
        saved = await self.tournaments.save(working, doc.version)
        if result is not None:
            await self._credit_results(saved, result)
        await self._publish_transition(saved, transition, result)
        return saved

    # ========== Internals ==========

    async def _load_players(self, player_ids: Iterable[str]) -> list[PlayerRecord]:
        return list(await asyncio.gather(*(self.players.get(pid) for pid in player_ids)))

    async def _pair(
        self,
        doc: TournamentDocument,
        round_number: int,
        overrides: Sequence[PlayerRecord] = (),
    ) -> None:
        players = await self._load_players(doc.registered_player_ids)
        latest = {p.id: p for p in overrides}
        players = [latest.get(p.id, p) for p in players]
        history: list[SetDocument] = list(doc.iter_sets())
        doc.rounds.append(
            generate_round(players, doc.court_numbers, history, round_number)
        )

    async def _start(self, doc: TournamentDocument) -> None:
        await self._pair(doc, 1)
        doc.registration_closed = True
        logger.info(
            "Tournament %s registration closed with %d players; round 1 paired",
            doc.id,
            len(doc.registered_player_ids),
        )

    async def _advance(
        self, doc: TournamentDocument, ratings: Sequence[PlayerRecord]
    ) -> tuple[EventKind, Optional[FinalResult]]:
        finished = len(doc.rounds)
        if finished < doc.number_of_rounds:
            await self._pair(doc, finished + 1, ratings)
            logger.info("Tournament %s round %d paired", doc.id, finished + 1)
            return EventKind.NEW_PAIRING, None

        result = self._aggregate(doc)
        doc.is_completed = True
        doc.top_performers = result.top_performers
        logger.info(
            "Tournament %s completed; winners: %s",
            doc.id,
            ", ".join(result.winners),
        )
        return EventKind.MATCH_COMPLETION, result

    def _aggregate(self, doc: TournamentDocument) -> FinalResult:
        bye_points = doc.bye_points if doc.bye_policy is ByePolicy.CREDIT else 0
        return finalize(
            doc.registered_player_ids,
            doc.completed_sets(),
            byes=doc.bye_counts(),
            bye_points=bye_points,
        )

    async def _credit_results(self, doc: TournamentDocument, result: FinalResult) -> None:
        await asyncio.gather(
            *(
                self.players.increment(pid, wins=1)
                if result.is_winner(pid)
                else self.players.increment(pid, losses=1)
                for pid in doc.registered_player_ids
            )
        )

    async def _publish_pairing(self, doc: TournamentDocument) -> None:
        if not doc.rounds:
            return
        latest = doc.rounds[-1]
        await self.events.publish(
            TournamentEvent(
                kind=EventKind.NEW_PAIRING,
                tournament_id=doc.id,
                round_number=latest.round_number,
                payload={
                    "sets": [
                        {
                            "setId": s.id,
                            "courtNumber": s.court_number,
                            "teams": [team.player_ids for team in s.teams],
                        }
                        for s in latest.sets
                    ],
                    "byes": latest.byes,
                },
            )
        )

    async def _publish_transition(
        self,
        doc: TournamentDocument,
        transition: Optional[EventKind],
        result: Optional[FinalResult],
    ) -> None:
        if transition is EventKind.NEW_PAIRING:
            await self._publish_pairing(doc)
        elif transition is EventKind.MATCH_COMPLETION and result is not None:
            await self.events.publish(
                TournamentEvent(
                    kind=EventKind.MATCH_COMPLETION,
                    tournament_id=doc.id,
                    round_number=len(doc.rounds),
                    payload={
                        "winners": result.winners,
                        "topPerformers": result.top_performers,
                    },
                )
            )

"""Balanced doubles pairing for a single round."""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, Sequence

from ..exceptions import InsufficientPlayers
from ..schemas import PlayerRecord, RoundDocument, SetDocument, TeamDocument

logger = logging.getLogger(__name__)

PLAYERS_PER_COURT = 4
REPEAT_AVOIDANCE_PASSES = 3


def pair_key(player_ids: Iterable[str]) -> frozenset[str]:
    """Order-independent identity of a partnership."""

    return frozenset(player_ids)


def previous_partnerships(history: Iterable[SetDocument]) -> set[frozenset[str]]:
    return {pair_key(team.player_ids) for s in history for team in s.teams}


def rank_players(players: Sequence[PlayerRecord]) -> list[PlayerRecord]:
    """Strongest first; equal ratings fall back to the player id."""

    return sorted(players, key=lambda p: (-p.rating, p.id))


def snake_pairs(ranked: Sequence[PlayerRecord]) -> list[list[PlayerRecord]]:
    """Pair rank ``i`` with rank ``n - 1 - i``; an odd middle player is left out."""

    n = len(ranked)
    return [[ranked[i], ranked[n - 1 - i]] for i in range(n // 2)]


def avoid_repeats(
    pairs: list[list[PlayerRecord]],
    played: set[frozenset[str]],
    *,
    passes: int = REPEAT_AVOIDANCE_PASSES,
) -> list[list[PlayerRecord]]:
    """Best-effort removal of partnerships that already played together.

    Each pass swaps the second member of the first repeated pair with the
    second member of the pair after it. Repeats may survive when no
    following pair exists or the passes run out.
    """

    pairs = [list(pair) for pair in pairs]
    if not played:
        return pairs

    for attempt in range(passes):
        swapped = False
        for index in range(len(pairs) - 1):
            if pair_key(p.id for p in pairs[index]) not in played:
                continue
            following = pairs[index + 1]
            pairs[index][1], following[1] = following[1], pairs[index][1]
            logger.debug(
                "Pass %d: swapped partners at positions %d and %d",
                attempt + 1,
                index,
                index + 1,
            )
            swapped = True
            break
        if not swapped:
            break

    return pairs


def generate_round(
    players: Sequence[PlayerRecord],
    courts: Sequence[str],
    history: Sequence[SetDocument],
    round_number: int,
) -> RoundDocument:
    """Create the sets for ``round_number``.

    Players are ranked by rating and snake-paired so that the strongest plays
    with the weakest. Pairs that already partnered in ``history`` are
    reshuffled where possible. Consecutive pairs then face each other on the
    courts in the order given; anyone left without a court is recorded in the
    round's ``byes``.

    Raises ``InsufficientPlayers`` with fewer than four players or fewer
    courts than full groups of four; nothing is produced in that case.
    """

    if len({p.id for p in players}) != len(players):
        raise ValueError("player ids must be unique")
    if len(players) < PLAYERS_PER_COURT or len(courts) < len(players) // PLAYERS_PER_COURT:
        raise InsufficientPlayers(len(players), len(courts))

    ranked = rank_players(players)
    pairs = snake_pairs(ranked)
    if history:
        pairs = avoid_repeats(pairs, previous_partnerships(history))

    groups = [(pairs[i], pairs[i + 1]) for i in range(0, len(pairs) - 1, 2)]

    sets: list[SetDocument] = []
    for court, (first, second) in zip(courts, groups):
        sets.append(
            SetDocument(
                id=uuid.uuid4().hex,
                round_number=round_number,
                court_number=court,
                teams=[
                    TeamDocument(id=uuid.uuid4().hex, player_ids=[p.id for p in first]),
                    TeamDocument(id=uuid.uuid4().hex, player_ids=[p.id for p in second]),
                ],
            )
        )

    scheduled = {pid for s in sets for pid in s.player_ids}
    byes = [p.id for p in ranked if p.id not in scheduled]
    if byes:
        logger.info(
            "Round %d: %d player(s) without a court: %s",
            round_number,
            len(byes),
            ", ".join(byes),
        )

    return RoundDocument(round_number=round_number, sets=sets, byes=byes)

"""End-of-tournament standings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from ..schemas import SetDocument

TOP_PERFORMER_COUNT = 3


@dataclass
class PlayerStanding:
    player_id: str
    wins: int = 0
    points: int = 0
    sets_played: int = 0
    byes: int = 0

    @property
    def key(self) -> tuple[int, int]:
        return (self.wins, self.points)


@dataclass
class FinalResult:
    ranking: list[str]
    stats: dict[str, PlayerStanding]
    winners: list[str] = field(default_factory=list)
    top_performers: list[str] = field(default_factory=list)

    def is_winner(self, player_id: str) -> bool:
        return player_id in self.winners


def finalize(
    registered_player_ids: Sequence[str],
    completed_sets: Iterable[SetDocument],
    *,
    byes: Mapping[str, int] | None = None,
    bye_points: int = 0,
) -> FinalResult:
    """Aggregate wins and points and rank the roster.

    A set is won by the team with strictly more games; a tied set gives no
    win to either side. Every player collects their own team's games as
    points, won or lost. ``byes`` maps player ids to rounds sat out, each
    worth ``bye_points``.

    Ranking is by wins, then points, both descending. Fully tied players keep
    their registration order. Everyone sharing the top ``(wins, points)``
    is a winner; the first three of the ranking are the top performers.
    """

    stats = {pid: PlayerStanding(player_id=pid) for pid in registered_player_ids}

    for s in completed_sets:
        if not s.is_completed:
            continue
        winner = s.winning_team
        for team in s.teams:
            for pid in team.player_ids:
                standing = stats.setdefault(pid, PlayerStanding(player_id=pid))
                standing.sets_played += 1
                standing.points += team.games_won
                if winner is not None and team.id == winner.id:
                    standing.wins += 1

    for pid, count in (byes or {}).items():
        standing = stats.setdefault(pid, PlayerStanding(player_id=pid))
        standing.byes += count
        standing.points += count * bye_points

    order = {pid: index for index, pid in enumerate(stats)}
    ranking = sorted(
        stats,
        key=lambda pid: (-stats[pid].wins, -stats[pid].points, order[pid]),
    )

    winners: list[str] = []
    if ranking:
        top = stats[ranking[0]].key
        winners = [pid for pid in ranking if stats[pid].key == top]

    return FinalResult(
        ranking=ranking,
        stats=stats,
        winners=winners,
        top_performers=ranking[:TOP_PERFORMER_COUNT],
    )

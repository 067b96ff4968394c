from typing import Sequence

from ..schemas import PlayerRecord

K_FACTOR = 32
K_FACTOR_EXPERIENCED = 16
# Players with fewer finished tournaments than this use the full K-factor.
PROVISIONAL_GAMES = 10
ELO_SCALE = 400.0


def expected_score(rating: int, opponent_rating: int) -> float:
    """Return the Elo expectation of ``rating`` against ``opponent_rating``."""

    return 1 / (1 + 10 ** ((opponent_rating - rating) / ELO_SCALE))


def k_factor(player: PlayerRecord) -> int:
    """Higher sensitivity for players with little history."""

    if player.wins + player.losses < PROVISIONAL_GAMES:
        return K_FACTOR
    return K_FACTOR_EXPERIENCED


def team_rating(team: Sequence[PlayerRecord]) -> int:
    """Integer (truncating) average of the members' ratings."""

    return sum(p.rating for p in team) // len(team)


def _apply(team: Sequence[PlayerRecord], result: float, expected: float) -> list[PlayerRecord]:
    updated = []
    for player in team:
        # int() truncates toward zero, matching an integer cast
        delta = int(k_factor(player) * (result - expected))
        updated.append(player.model_copy(update={"rating": player.rating + delta}))
    return updated


def update_ratings(
    team1: Sequence[PlayerRecord],
    team2: Sequence[PlayerRecord],
    team1_games: int,
    team2_games: int,
) -> list[PlayerRecord]:
    """Return updated ratings for all four participants of a finished set.

    The outcome is fractional: winning 6 games to 4 credits ``0.6`` rather
    than a full win. Each team is rated as the integer average of its
    members, and every member moves by ``int(K * (result - expected))`` with
    their own K-factor, so the exchange is not zero-sum when the players'
    experience differs.

    When no games were played the players are returned unchanged. Inputs are
    never mutated; the result lists team1 members first, then team2.
    """

    if not team1 or not team2:
        raise ValueError("both teams need at least one player")

    total = team1_games + team2_games
    if total == 0:
        return [p.model_copy() for p in (*team1, *team2)]

    result1 = team1_games / total
    result2 = team2_games / total

    rating1 = team_rating(team1)
    rating2 = team_rating(team2)
    expected1 = expected_score(rating1, rating2)
    expected2 = expected_score(rating2, rating1)

    return _apply(team1, result1, expected1) + _apply(team2, result2, expected2)

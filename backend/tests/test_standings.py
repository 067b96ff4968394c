from courtrounds.schemas import SetDocument, TeamDocument
from courtrounds.services import finalize


def _set(
    set_id: str,
    team1: tuple[str, str],
    team2: tuple[str, str],
    score: tuple[int, int],
    *,
    round_number: int = 1,
    completed: bool = True,
) -> SetDocument:
    return SetDocument(
        id=set_id,
        round_number=round_number,
        court_number="1",
        teams=[
            TeamDocument(id=f"{set_id}-a", player_ids=list(team1), games_won=score[0]),
            TeamDocument(id=f"{set_id}-b", player_ids=list(team2), games_won=score[1]),
        ],
        is_completed=completed,
    )


ROSTER = ["a", "b", "c", "d"]


def test_wins_and_points_are_aggregated():
    sets = [
        _set("s1", ("a", "b"), ("c", "d"), (6, 4)),
        _set("s2", ("a", "c"), ("b", "d"), (3, 6), round_number=2),
    ]

    result = finalize(ROSTER, sets)

    assert {pid: (s.wins, s.points) for pid, s in result.stats.items()} == {
        "a": (1, 9),
        "b": (2, 12),
        "c": (0, 7),
        "d": (1, 10),
    }
    assert result.ranking == ["b", "d", "a", "c"]
    assert result.winners == ["b"]
    assert result.top_performers == ["b", "d", "a"]
    assert result.stats["a"].sets_played == 2


def test_tied_set_counts_points_but_no_win():
    result = finalize(ROSTER, [_set("s1", ("a", "b"), ("c", "d"), (5, 5))])

    assert all(s.wins == 0 for s in result.stats.values())
    assert all(s.points == 5 for s in result.stats.values())
    assert result.winners == ROSTER


def test_full_ties_keep_registration_order():
    roster = ["d", "c", "b", "a"]

    result = finalize(roster, [_set("s1", ("d", "a"), ("c", "b"), (6, 2))])

    assert result.ranking == ["d", "a", "c", "b"]
    assert result.winners == ["d", "a"]
    assert result.is_winner("a")
    assert not result.is_winner("c")


def test_open_sets_are_ignored():
    sets = [
        _set("s1", ("a", "b"), ("c", "d"), (6, 0)),
        _set("s2", ("a", "c"), ("b", "d"), (0, 6), completed=False),
    ]

    result = finalize(ROSTER, sets)

    assert result.stats["d"].wins == 0
    assert result.stats["a"].sets_played == 1


def test_players_without_sets_still_rank():
    roster = ["a", "b", "c", "d", "e"]

    result = finalize(roster, [_set("s1", ("a", "b"), ("c", "d"), (6, 1))])

    assert result.ranking[-1] == "e"
    assert result.stats["e"].sets_played == 0


def test_byes_are_credited_when_points_are_given():
    roster = ["a", "b", "c", "d", "e"]
    sets = [_set("s1", ("a", "b"), ("c", "d"), (6, 4))]

    plain = finalize(roster, sets, byes={"e": 1})
    credited = finalize(roster, sets, byes={"e": 1}, bye_points=5)

    assert plain.stats["e"].byes == 1
    assert plain.stats["e"].points == 0
    assert credited.stats["e"].points == 5
    assert credited.ranking.index("e") < credited.ranking.index("c")


def test_empty_roster():
    result = finalize([], [])

    assert result.ranking == []
    assert result.winners == []
    assert result.top_performers == []

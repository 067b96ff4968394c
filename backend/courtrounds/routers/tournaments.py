from fastapi import APIRouter, Depends, Query

from ..dependencies import get_controller
from ..exceptions import ProblemDetail
from ..schemas import (
    PlayerTournamentsOut,
    RegistrationRequest,
    ScoreOutcome,
    ScoreSubmission,
    StandingsOut,
    TournamentCreate,
    TournamentDocument,
    TournamentStateOut,
)
from ..services import RoundProgressionController

router = APIRouter(
    prefix="/tournaments",
    tags=["tournaments"],
    responses={
        404: {"model": ProblemDetail},
        409: {"model": ProblemDetail},
        422: {"model": ProblemDetail},
    },
)


@router.post("", response_model=TournamentDocument)
async def create_tournament(
    body: TournamentCreate,
    controller: RoundProgressionController = Depends(get_controller),
):
    return await controller.create_tournament(body)


@router.get("", response_model=PlayerTournamentsOut)
async def list_player_tournaments(
    player_id: str = Query(..., alias="playerId", min_length=1),
    controller: RoundProgressionController = Depends(get_controller),
):
    return await controller.tournaments_for_player(player_id)


@router.get("/{tournament_id}", response_model=TournamentStateOut)
async def get_tournament(
    tournament_id: str,
    controller: RoundProgressionController = Depends(get_controller),
):
    return await controller.get_state(tournament_id)


@router.post("/{tournament_id}/registrations", response_model=TournamentDocument)
async def register_player(
    tournament_id: str,
    body: RegistrationRequest,
    controller: RoundProgressionController = Depends(get_controller),
):
    return await controller.register_player(
        tournament_id, body.player_id, invite_code=body.invite_code
    )


@router.post("/{tournament_id}/close-registration", response_model=TournamentDocument)
async def close_registration(
    tournament_id: str,
    controller: RoundProgressionController = Depends(get_controller),
):
    return await controller.close_registration(tournament_id)


@router.post("/{tournament_id}/sets/{set_id}/score", response_model=ScoreOutcome)
async def submit_score(
    tournament_id: str,
    set_id: str,
    body: ScoreSubmission,
    controller: RoundProgressionController = Depends(get_controller),
):
    return await controller.submit_score(
        tournament_id, set_id, body.team1_games, body.team2_games
    )


@router.post("/{tournament_id}/advance", response_model=TournamentDocument)
async def advance_tournament(
    tournament_id: str,
    controller: RoundProgressionController = Depends(get_controller),
):
    return await controller.advance(tournament_id)


@router.get("/{tournament_id}/standings", response_model=StandingsOut)
async def get_standings(
    tournament_id: str,
    controller: RoundProgressionController = Depends(get_controller),
):
    return await controller.standings(tournament_id)

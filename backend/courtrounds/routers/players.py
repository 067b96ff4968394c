import uuid

from fastapi import APIRouter, Depends

from ..config import DEFAULT_RATING
from ..dependencies import get_player_store
from ..exceptions import ProblemDetail
from ..schemas import PlayerCreate, PlayerRecord
from ..stores import PlayerStore

router = APIRouter(
    prefix="/players",
    tags=["players"],
    responses={400: {"model": ProblemDetail}, 404: {"model": ProblemDetail}},
)


@router.post("", response_model=PlayerRecord)
async def create_player(
    body: PlayerCreate, store: PlayerStore = Depends(get_player_store)
):
    player = PlayerRecord(
        id=body.id or uuid.uuid4().hex,
        name=body.name,
        rating=body.rating if body.rating is not None else DEFAULT_RATING,
    )
    return await store.add(player)


@router.get("/{player_id}", response_model=PlayerRecord)
async def get_player(player_id: str, store: PlayerStore = Depends(get_player_store)):
    return await store.get(player_id)

from fastapi import APIRouter, Request
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.util import get_remote_address

from crashline.config import settings
from crashline.core.engine import RoundEngine

limiter = Limiter(key_func=get_remote_address)

router = APIRouter()


# ==================== Request Models ====================

class BetRequest(BaseModel):
    player_id: str
    amount: float


class CashoutRequest(BaseModel):
    player_id: str


# ==================== Helpers ====================

def get_engine(request: Request) -> RoundEngine:
    return request.app.state.engine


def get_game_rate_limit() -> str:
    return settings.rate_limit.game_requests if settings.rate_limit.enabled else "1000/minute"


def get_api_rate_limit() -> str:
    return settings.rate_limit.api_requests if settings.rate_limit.enabled else "1000/minute"


# ==================== Round Endpoints ====================
# CrashGameError raised by the engine is turned into a 400 by the handler in main.

@router.post("/bet")
@limiter.limit(get_game_rate_limit)
async def place_bet(request: Request, data: BetRequest):
    result = get_engine(request).place_bet(data.player_id, data.amount)
    return {
        "message": "Bet placed",
        "player_id": data.player_id,
        "amount": float(result["amount"]),
        "new_balance": float(result["new_balance"]),
    }


@router.post("/cashout")
@limiter.limit(get_game_rate_limit)
async def cash_out(request: Request, data: CashoutRequest):
    result = get_engine(request).cash_out(data.player_id)
    return {
        "message": "Cashed out successfully",
        "winnings": float(result["winnings"]),
        "new_balance": float(result["new_balance"]),
        "multiplier": float(result["multiplier"]),
    }


@router.get("/state")
@limiter.limit(get_api_rate_limit)
async def get_state(request: Request):
    return get_engine(request).snapshot().to_dict()


@router.get("/balances")
@limiter.limit(get_api_rate_limit)
async def get_balances(request: Request):
    return get_engine(request).balances().to_dict()


@router.get("/balance/{player_id}")
@limiter.limit(get_api_rate_limit)
async def get_balance(request: Request, player_id: str):
    return {"player_id": player_id, "balance": float(get_engine(request).balance_of(player_id))}


@router.get("/bets")
@limiter.limit(get_api_rate_limit)
async def get_bets(request: Request):
    return {"bets": get_engine(request).current_bets()}

from fastapi import FastAPI, HTTPException, Depends, Header, Request, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from core.config import settings
from core.exceptions import (
    QuizEngineError,
    ValidationError,
    AuthorizationError,
    NotFoundError,
    ConflictError,
    QuizClosedError,
)
from core.logger import logger
from db.session import get_db, get_redis
from schemas.quiz import CamelModel
from schemas.session import AnswerOutcome, StartSessionResponse
from services.answer_service import AnswerService, TIME_EXPIRED
from services.quiz_service import QuizService, normalize_wallet
from services.reward_service import RewardService
from services.session_service import SessionService
from services.stats_service import StatsService, PERIODS
from utils.serialization import attempt_answers, quiz_to_document, serialize_quiz

# API Documentation
API_DESCRIPTION = """
## QuizRush Attempt API

Timed quiz attempts with tiered token rewards for the fastest correct finishers.

### Authentication

Requests arrive through the wallet auth gateway, which verifies the wallet
signature and forwards the address in `X-Wallet-Address`. This service
trusts that header as-is.

### Rate Limits

- Starting attempts is limited per wallet (see `START_RATE_LIMIT`).
"""

TAGS_METADATA = [
    {"name": "quizzes", "description": "Create, list and cancel quizzes."},
    {"name": "attempts", "description": "Start an attempt and answer questions against the server clock."},
    {"name": "rewards", "description": "Winner reward claims awaiting on-chain settlement."},
    {"name": "stats", "description": "Leaderboards and wallet statistics."},
]

app = FastAPI(
    title="QuizRush Attempt API",
    description=API_DESCRIPTION,
    version="1.0.0",
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_BY_ERROR = {
    ValidationError: 400,
    AuthorizationError: 401,
    NotFoundError: 404,
    ConflictError: 409,
    QuizClosedError: 410,
}


@app.exception_handler(QuizEngineError)
async def engine_error_handler(request: Request, exc: QuizEngineError):
    status_code = 500
    for error_class, code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_class):
            status_code = code
            break
    # Unknown question ids are a malformed request, not a missing resource
    if exc.code == "INVALID_QUESTION":
        status_code = 400

    body = {"error": exc.code, "message": exc.message}
    if isinstance(exc, ValidationError):
        body["details"] = exc.errors
    return JSONResponse(status_code=status_code, content=body)


# === Pydantic Models with Documentation ===

class QuestionIn(CamelModel):
    """A question as submitted by the quiz creator."""
    text: str = Field("", description="The question text", examples=["What is 2+2?"])
    options: List[Any] = Field(default_factory=list, description="Answer options (2-6 items)")
    correct_index: Optional[Any] = Field(None, description="Index of the correct answer (0-based)")


class CreateQuizRequest(CamelModel):
    """Request body for creating a quiz. Every rule is checked and reported together."""
    title: str = Field("", description="Quiz title")
    description: Optional[str] = None
    questions: List[QuestionIn] = Field(default_factory=list)
    reward_token: str = Field("", description="ERC-20 address of the reward token")
    reward_amount: str = Field("", description="Total reward in the token's smallest unit")
    winner_limit: Optional[int] = Field(None, description="Maximum number of paid winners")
    time_per_question: Optional[int] = Field(None, description="Seconds per question (5-300)")
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    stake_token: Optional[str] = None
    stake_amount: Optional[str] = None
    nft_enabled: bool = False
    nft_artwork_url: Optional[str] = None
    reward_pools: Optional[List[Dict[str, Any]]] = None

    def to_config(self) -> dict:
        config = self.model_dump(by_alias=True, exclude={"stake_token", "stake_amount"})
        if self.stake_token or self.stake_amount:
            config["stakeRequirement"] = {"token": self.stake_token, "amount": self.stake_amount}
        return config


class SubmitAnswerRequest(CamelModel):
    question_id: str = Field(..., description="Id of the question being answered")
    selected_index: int = Field(..., description="Index of the chosen option")
    client_timestamp: Optional[int] = Field(None, description="Client clock in ms, audit only")


class ClaimRequest(BaseModel):
    txHash: str = Field(..., description="Settlement transaction hash", max_length=128)


def get_current_wallet(x_wallet_address: str = Header(None)) -> str:
    wallet = normalize_wallet(x_wallet_address)
    if not wallet:
        logger.warning("Auth failed: missing wallet identity")
        raise HTTPException(status_code=401, detail="Wallet address required")
    return wallet


async def enforce_start_rate_limit(wallet: str, redis) -> None:
    rate_key = f"rl:start:{wallet}"
    current_count = await redis.get(rate_key)
    if current_count and int(current_count) >= settings.START_RATE_LIMIT:
        raise HTTPException(status_code=429, detail="Too many start requests. Please wait a minute.")
    await redis.incr(rate_key)
    if not current_count:
        await redis.expire(rate_key, settings.START_RATE_WINDOW_SECONDS)


# === Quizzes ===

@app.post("/api/quizzes", status_code=201, tags=["quizzes"], summary="Create quiz")
async def create_quiz(
    body: CreateQuizRequest,
    wallet: str = Depends(get_current_wallet),
    db: AsyncSession = Depends(get_db),
):
    quiz = await QuizService(db).create_quiz(wallet, body.to_config())
    return {"quiz": {"id": quiz.id, "title": quiz.title, "status": quiz.status, "createdAt": quiz.created_at}}


@app.get("/api/quizzes", tags=["quizzes"], summary="List active quizzes")
async def list_quizzes(db: AsyncSession = Depends(get_db)):
    quizzes = await QuizService(db).get_active_quizzes()
    return {"quizzes": [QuizService.to_list_item(q) for q in quizzes]}


@app.get("/api/quizzes/{quiz_id}", tags=["quizzes"], summary="Get quiz details")
async def get_quiz(quiz_id: int, db: AsyncSession = Depends(get_db)):
    quiz = await QuizService(db).get_quiz(quiz_id)
    if not quiz:
        raise NotFoundError("Quiz not found", code="QUIZ_NOT_FOUND")
    return {"quiz": QuizService.to_list_item(quiz)}


@app.post("/api/quizzes/{quiz_id}/cancel", tags=["quizzes"], summary="Cancel quiz")
async def cancel_quiz(quiz_id: int, wallet: str = Depends(get_current_wallet), db: AsyncSession = Depends(get_db)):
    quiz = await QuizService(db).cancel_quiz(quiz_id, wallet)
    return {"quiz": {"id": quiz.id, "status": quiz.status}}


@app.get("/api/quizzes/{quiz_id}/export", tags=["quizzes"], summary="Export quiz with answers")
async def export_quiz(quiz_id: int, wallet: str = Depends(get_current_wallet), db: AsyncSession = Depends(get_db)):
    """Full quiz document, correct answers included. Creator only."""
    quiz = await QuizService(db).get_quiz(quiz_id)
    if not quiz:
        raise NotFoundError("Quiz not found", code="QUIZ_NOT_FOUND")
    if quiz.creator_wallet != wallet:
        raise AuthorizationError("Only the creator can export this quiz")
    return Response(content=serialize_quiz(quiz_to_document(quiz)), media_type="application/json")


# === Attempts ===

@app.post(
    "/api/quizzes/{quiz_id}/start",
    response_model=StartSessionResponse,
    tags=["attempts"],
    summary="Start attempt",
    responses={
        404: {"description": "QUIZ_NOT_FOUND"},
        409: {"description": "ALREADY_ATTEMPTED"},
        410: {"description": "QUIZ_CLOSED"},
        429: {"description": "Too many requests"},
    },
)
async def start_attempt(
    quiz_id: int,
    wallet: str = Depends(get_current_wallet),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    await enforce_start_rate_limit(wallet, redis)
    return await SessionService(db).start_session(quiz_id, wallet)


@app.post(
    "/api/attempts/{session_id}/answer",
    response_model=AnswerOutcome,
    response_model_exclude_none=True,
    tags=["attempts"],
    summary="Submit answer",
    responses={
        400: {"description": "INVALID_QUESTION"},
        401: {"description": "UNAUTHORIZED"},
        404: {"description": "SESSION_NOT_FOUND"},
        408: {"description": "TIME_EXPIRED"},
        409: {"description": "ALREADY_ANSWERED"},
    },
)
async def submit_answer(
    session_id: str,
    body: SubmitAnswerRequest,
    wallet: str = Depends(get_current_wallet),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    outcome = await AnswerService(db, redis=redis).submit_answer(
        session_id,
        wallet,
        body.question_id,
        body.selected_index,
        body.client_timestamp,
    )
    if outcome.error == TIME_EXPIRED:
        return JSONResponse(
            status_code=408,
            content={"error": TIME_EXPIRED, "message": "Time limit exceeded", "status": outcome.status},
        )
    return outcome


@app.get("/api/attempts/{session_id}", tags=["attempts"], summary="Attempt state")
async def get_attempt(session_id: str, wallet: str = Depends(get_current_wallet), db: AsyncSession = Depends(get_db)):
    attempt = await SessionService(db).get_session(session_id)
    if not attempt:
        raise NotFoundError("Session not found", code="SESSION_NOT_FOUND")
    if attempt.wallet_address != wallet:
        raise AuthorizationError("Session does not belong to this wallet")
    return {
        "sessionId": attempt.session_id,
        "quizId": attempt.quiz_id,
        "status": attempt.status,
        "score": attempt.score,
        "totalQuestions": attempt.total_questions,
        "startTime": attempt.start_time_ms,
        "completionTimeMs": attempt.completion_time_ms,
        "isWinner": attempt.is_winner,
        "answers": [a.model_dump(by_alias=True) for a in attempt_answers(attempt)],
    }


# === Stats ===

@app.get("/api/quizzes/{quiz_id}/leaderboard", tags=["stats"], summary="Quiz leaderboard")
async def quiz_leaderboard(quiz_id: int, db: AsyncSession = Depends(get_db)):
    return await StatsService(db).get_quiz_leaderboard(quiz_id)


@app.get("/api/leaderboard", tags=["stats"], summary="Global leaderboard")
async def global_leaderboard(
    period: str = Query("all"),
    limit: int = Query(settings.LEADERBOARD_DEFAULT_LIMIT, ge=1),
    db: AsyncSession = Depends(get_db),
):
    if period not in PERIODS:
        raise HTTPException(status_code=400, detail=f"period must be one of {', '.join(PERIODS)}")
    board = await StatsService(db).get_global_leaderboard(period, limit)
    return {"leaderboard": board, "period": period}


@app.get("/api/profile/stats", tags=["stats"], summary="Wallet statistics")
async def profile_stats(wallet: str = Query(...), db: AsyncSession = Depends(get_db)):
    return await StatsService(db).get_wallet_stats(normalize_wallet(wallet))


# === Rewards ===

@app.get("/api/rewards", tags=["rewards"], summary="List reward claims")
async def list_rewards(wallet: str = Depends(get_current_wallet), db: AsyncSession = Depends(get_db)):
    return {"rewards": await RewardService(db).get_claims(wallet)}


@app.post("/api/rewards/{claim_id}/claim", tags=["rewards"], summary="Record settlement")
async def claim_reward(
    claim_id: int,
    body: ClaimRequest,
    wallet: str = Depends(get_current_wallet),
    db: AsyncSession = Depends(get_db),
):
    claim = await RewardService(db).mark_claimed(claim_id, wallet, body.txHash)
    return {"success": True, "txHash": claim.tx_hash, "status": claim.status}


@app.get("/health", include_in_schema=False)
async def health():
    return {"status": "ok", "env": settings.ENV}

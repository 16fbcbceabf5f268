import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models.quiz import Quiz, QuizStatus
from core.config import settings
from core.exceptions import ValidationError, NotFoundError, AuthorizationError, QuizClosedError
from core.logger import logger
from utils.rewards import calculate_reward_per_winner, implicit_pools
from utils.session_logic import Clock, now_ms, has_reached_winner_limit
from utils.validation import validate_quiz_config


def normalize_wallet(address: str) -> str:
    """EVM addresses compare case-insensitively; store one canonical form."""
    return (address or "").strip().lower()


def _to_naive_utc(value) -> Optional[datetime]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip())
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def ms_to_datetime(value_ms: int) -> datetime:
    return datetime.fromtimestamp(value_ms / 1000, tz=timezone.utc).replace(tzinfo=None)


class QuizService:
    def __init__(self, db: AsyncSession, clock: Clock = now_ms):
        self.db = db
        self.clock = clock

    async def create_quiz(self, creator_wallet: str, payload: dict) -> Quiz:
        """Validate a quiz definition and store it as immediately playable."""
        questions = [
            {
                "id": q.get("id") or f"q{index}-{uuid.uuid4().hex[:8]}",
                "text": q.get("text"),
                "options": q.get("options"),
                "correctIndex": q.get("correctIndex"),
            } if isinstance(q, dict) else q
            for index, q in enumerate(payload.get("questions") or [], 1)
        ]
        config = dict(payload, questions=questions)
        if config.get("timePerQuestion") is None:
            config["timePerQuestion"] = settings.DEFAULT_TIME_PER_QUESTION

        result = validate_quiz_config(config)
        if not result.is_valid:
            logger.info("Quiz rejected", creator=creator_wallet, errors=len(result.errors))
            raise ValidationError(result.errors)

        stake = config.get("stakeRequirement") or {}
        pools = config.get("rewardPools") or None

        quiz = Quiz(
            creator_wallet=normalize_wallet(creator_wallet),
            title=config["title"].strip(),
            description=config.get("description") or None,
            questions_json={"questions": questions, "version": 1},
            reward_token=config["rewardToken"],
            reward_amount=str(int(Decimal(str(config["rewardAmount"]).strip()))),
            winner_limit=config["winnerLimit"],
            current_winners=0,
            time_per_question=config["timePerQuestion"],
            reward_pools=pools,
            start_time=_to_naive_utc(config.get("startTime")),
            end_time=_to_naive_utc(config.get("endTime")),
            stake_token=stake.get("token"),
            stake_amount=str(int(Decimal(str(stake["amount"]).strip()))) if stake else None,
            nft_enabled=bool(config.get("nftEnabled", False)),
            nft_artwork_url=config.get("nftArtworkUrl"),
            status=QuizStatus.ACTIVE,
        )
        self.db.add(quiz)
        await self.db.commit()
        await self.db.refresh(quiz)
        logger.info("Quiz created", quiz_id=quiz.id, creator=quiz.creator_wallet, questions=len(questions))
        return quiz

    async def get_quiz(self, quiz_id: int) -> Optional[Quiz]:
        # Winner slots are taken with bulk UPDATEs; never trust a cached row
        result = await self.db.execute(
            select(Quiz).filter(Quiz.id == quiz_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_active_quizzes(self) -> List[Quiz]:
        result = await self.db.execute(
            select(Quiz).filter(Quiz.status == QuizStatus.ACTIVE).order_by(Quiz.created_at.desc(), Quiz.id.desc())
        )
        return result.scalars().all()

    async def cancel_quiz(self, quiz_id: int, wallet_address: str) -> Quiz:
        """Creator-only. Running attempts may still finish; no new ones start."""
        result = await self.db.execute(select(Quiz).filter(Quiz.id == quiz_id).with_for_update())
        quiz = result.scalar_one_or_none()
        if not quiz:
            await self.db.rollback()
            raise NotFoundError("Quiz not found", code="QUIZ_NOT_FOUND")
        if quiz.creator_wallet != normalize_wallet(wallet_address):
            await self.db.rollback()
            raise AuthorizationError("Only the creator can cancel this quiz")
        if quiz.status not in (QuizStatus.ACTIVE, QuizStatus.DRAFT):
            await self.db.rollback()
            raise QuizClosedError(f"Quiz is already {quiz.status}")

        quiz.status = QuizStatus.CANCELLED
        await self.db.commit()
        logger.info("Quiz cancelled", quiz_id=quiz_id, creator=quiz.creator_wallet)
        return quiz

    def ensure_playable(self, quiz: Optional[Quiz]) -> Quiz:
        """Raise unless a new attempt may start on this quiz right now."""
        if not quiz:
            raise NotFoundError("Quiz not found", code="QUIZ_NOT_FOUND")
        if quiz.status != QuizStatus.ACTIVE:
            raise QuizClosedError("Quiz is not active")

        now = ms_to_datetime(self.clock())
        if quiz.start_time and now < quiz.start_time:
            raise QuizClosedError("Quiz has not started yet")
        if quiz.end_time and now > quiz.end_time:
            raise QuizClosedError("Quiz has ended")

        if has_reached_winner_limit(quiz.current_winners, quiz.winner_limit):
            raise QuizClosedError("Quiz has reached winner limit")
        return quiz

    @staticmethod
    def to_list_item(quiz: Quiz) -> dict:
        """Public listing entry. Carries no answers."""
        total = int(quiz.reward_amount)
        stake_required = None
        if quiz.stake_token and quiz.stake_amount:
            stake_required = {"token": quiz.stake_token, "amount": quiz.stake_amount}
        return {
            "id": quiz.id,
            "title": quiz.title,
            "description": quiz.description,
            "questionCount": len(quiz.questions),
            "rewardToken": quiz.reward_token,
            "rewardAmount": quiz.reward_amount,
            "rewardPerWinner": str(calculate_reward_per_winner(total, quiz.winner_limit)),
            "remainingSpots": max(quiz.winner_limit - quiz.current_winners, 0),
            "timePerQuestion": quiz.time_per_question,
            "startsAt": quiz.start_time,
            "endsAt": quiz.end_time,
            "stakeRequired": stake_required,
            "rewardPools": quiz.reward_pools or implicit_pools(quiz.winner_limit),
            "status": quiz.status,
        }

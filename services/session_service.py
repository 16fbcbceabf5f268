from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from models.session import Attempt, AttemptStatus
from schemas.quiz import QuestionPublic
from schemas.session import StartSessionResponse
from services.quiz_service import QuizService, normalize_wallet
from core.exceptions import ConflictError
from core.logger import logger
from utils.session_logic import Clock, now_ms, generate_session_id, shuffle_questions


class SessionService:
    def __init__(self, db: AsyncSession, clock: Clock = now_ms):
        self.db = db
        self.clock = clock

    async def start_session(self, quiz_id: int, wallet_address: str, seed: Optional[int] = None) -> StartSessionResponse:
        """
        Open the single attempt a wallet gets on a quiz.

        The existence check below only saves a round trip. The unique
        (quiz_id, wallet_address) constraint decides the race: a rejected
        insert is what turns into ALREADY_ATTEMPTED.
        """
        wallet = normalize_wallet(wallet_address)
        quiz_service = QuizService(self.db, clock=self.clock)
        quiz = quiz_service.ensure_playable(await quiz_service.get_quiz(quiz_id))

        if await self.get_attempt_for_wallet(quiz.id, wallet):
            logger.info("Duplicate attempt rejected", quiz_id=quiz.id, wallet=wallet)
            raise ConflictError("You have already attempted this quiz", code="ALREADY_ATTEMPTED")

        questions = shuffle_questions(quiz.questions, seed=seed)
        start_time_ms = self.clock()

        attempt = Attempt(
            session_id=generate_session_id(),
            quiz_id=quiz.id,
            wallet_address=wallet,
            start_time_ms=start_time_ms,
            question_order=[q["id"] for q in questions],
            total_questions=len(questions),
            status=AttemptStatus.ACTIVE,
            score=0,
            is_winner=False,
        )
        session_id = attempt.session_id
        time_per_question = quiz.time_per_question
        self.db.add(attempt)
        try:
            await self.db.commit()
        except IntegrityError:
            # Rollback expires loaded rows; only plain locals are safe below
            await self.db.rollback()
            logger.info("Duplicate attempt rejected by storage", quiz_id=quiz_id, wallet=wallet)
            raise ConflictError("You have already attempted this quiz", code="ALREADY_ATTEMPTED")

        logger.info("Attempt started", quiz_id=quiz_id, wallet=wallet, session_id=session_id)
        return StartSessionResponse(
            session_id=session_id,
            questions=[QuestionPublic.from_question(q) for q in questions],
            time_per_question=time_per_question,
            server_time=self.clock(),
        )

    async def get_attempt_for_wallet(self, quiz_id: int, wallet_address: str) -> Optional[Attempt]:
        result = await self.db.execute(
            select(Attempt).filter(Attempt.quiz_id == quiz_id, Attempt.wallet_address == wallet_address)
        )
        return result.scalar_one_or_none()

    async def get_session(self, session_id: str, for_update: bool = False) -> Optional[Attempt]:
        query = select(Attempt).filter(Attempt.session_id == session_id)
        if for_update:
            # Lock the row and reload it, including answers, from the database
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

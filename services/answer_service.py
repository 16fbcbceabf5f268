from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from redis.asyncio import Redis
from models.quiz import Quiz
from models.session import Attempt, Answer, AttemptStatus, TIMEOUT_SENTINEL
from schemas.quiz import QuestionPublic
from schemas.session import AnswerOutcome, SessionResult
from services.quiz_service import normalize_wallet
from services.session_service import SessionService
from services.winner_service import WinnerService
from services.reward_service import RewardService
from core.exceptions import AuthorizationError, ConflictError, NotFoundError
from core.logger import logger
from utils.session_logic import Clock, now_ms, question_deadline, is_answer_already_submitted, is_answer_correct

TIME_EXPIRED = "TIME_EXPIRED"


class AnswerService:
    """
    Attempt state machine: active -> active | completed | failed | timeout.

    One call records at most one answer. The append and the resulting status
    change are committed in the same transaction, and any failure rolls both
    back, so a retried submission either finds its answer (ALREADY_ANSWERED)
    or is processed from scratch.
    """

    def __init__(self, db: AsyncSession, redis: Optional[Redis] = None, clock: Clock = now_ms):
        self.db = db
        self.redis = redis
        self.clock = clock

    async def submit_answer(
        self,
        session_id: str,
        wallet_address: str,
        question_id: str,
        selected_index: int,
        client_timestamp: Optional[int] = None,
    ) -> AnswerOutcome:
        # Captured before any I/O; the client clock is stored for audit only
        server_timestamp = self.clock()
        wallet = normalize_wallet(wallet_address)

        try:
            outcome, claim = await self._process(
                session_id, wallet, question_id, selected_index, client_timestamp, server_timestamp
            )
            await self.db.commit()
        except IntegrityError:
            # A concurrent request recorded this question (or this slot) first
            await self.db.rollback()
            logger.info("Concurrent duplicate answer rejected", session_id=session_id, question_id=question_id)
            raise ConflictError("This question has already been answered", code="ALREADY_ANSWERED")
        except Exception:
            await self.db.rollback()
            raise

        if claim is not None:
            await RewardService(self.db, self.redis).enqueue_settlement(claim)
        return outcome

    async def _process(self, session_id, wallet, question_id, selected_index, client_timestamp, server_timestamp):
        # 1. Load and lock the attempt
        attempt = await SessionService(self.db).get_session(session_id, for_update=True)
        if not attempt:
            raise NotFoundError("Session not found", code="SESSION_NOT_FOUND")
        if not attempt.is_active:
            # A retry of the submission that ended the attempt gets a definitive answer
            if attempt.wallet_address == wallet and is_answer_already_submitted(attempt.answers, question_id):
                raise ConflictError("This question has already been answered", code="ALREADY_ANSWERED")
            raise NotFoundError("Session is no longer active", code="SESSION_NOT_FOUND")

        # 2. Only the owning wallet may answer
        if attempt.wallet_address != wallet:
            raise AuthorizationError("Session does not belong to this wallet")

        # 3. Recorded answers are immutable
        if is_answer_already_submitted(attempt.answers, question_id):
            raise ConflictError("This question has already been answered", code="ALREADY_ANSWERED")

        quiz = await self.db.get(Quiz, attempt.quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found", code="QUIZ_NOT_FOUND")

        # 4. Position comes from our own append order, never from the client
        ordinal = len(attempt.answers)
        time_per_question_ms = quiz.time_per_question * 1000

        # 5. Deadline is anchored on the session start, checked against server time
        deadline = question_deadline(attempt.start_time_ms, ordinal, time_per_question_ms)
        if server_timestamp > deadline:
            self._append(attempt, ordinal, question_id, TIMEOUT_SENTINEL, client_timestamp, server_timestamp)
            self._finish(attempt, AttemptStatus.TIMEOUT, server_timestamp, score=ordinal)
            logger.info(
                "Attempt timed out",
                session_id=session_id,
                ordinal=ordinal,
                late_by_ms=server_timestamp - deadline,
            )
            return AnswerOutcome(
                correct=None,
                is_complete=True,
                status=attempt.status,
                error=TIME_EXPIRED,
            ), None

        # 6. Resolve against the quiz's own question set
        question = {q["id"]: q for q in quiz.questions}.get(question_id)
        if question is None:
            raise NotFoundError("Question not found", code="INVALID_QUESTION")

        # 7-8. Decide and record
        correct = is_answer_correct(selected_index, question["correctIndex"])
        self._append(attempt, ordinal, question_id, selected_index, client_timestamp, server_timestamp)

        # 9. Wrong answer ends the attempt
        if not correct:
            self._finish(attempt, AttemptStatus.FAILED, server_timestamp, score=ordinal)
            logger.info("Attempt failed", session_id=session_id, score=ordinal)
            return AnswerOutcome(
                correct=False,
                is_complete=True,
                status=attempt.status,
                result=self._result(attempt, server_timestamp),
            ), None

        # 10. Correct, more to go
        if ordinal + 1 < attempt.total_questions:
            await self.db.flush()
            next_id = attempt.question_order[ordinal + 1]
            next_question = {q["id"]: q for q in quiz.questions}[next_id]
            logger.debug("Answer recorded", session_id=session_id, ordinal=ordinal)
            return AnswerOutcome(
                correct=True,
                is_complete=False,
                status=attempt.status,
                next_question=QuestionPublic.from_question(next_question),
            ), None

        # 11. Last question answered correctly
        self._finish(attempt, AttemptStatus.COMPLETED, server_timestamp, score=ordinal + 1)
        attempt.completion_time_ms = server_timestamp - attempt.start_time_ms
        await self.db.flush()

        allocation = await WinnerService(self.db).assign(attempt)
        attempt.is_winner = allocation is not None

        result = self._result(attempt, server_timestamp)
        if allocation is not None:
            result.reward_amount = str(allocation.reward_amount)
            result.rank = allocation.rank

        logger.info(
            "Attempt completed",
            session_id=session_id,
            completion_time_ms=attempt.completion_time_ms,
            is_winner=attempt.is_winner,
        )
        return AnswerOutcome(
            correct=True,
            is_complete=True,
            status=attempt.status,
            result=result,
        ), allocation

    def _append(self, attempt: Attempt, ordinal, question_id, selected_index, client_timestamp, server_timestamp):
        attempt.answers.append(Answer(
            ordinal=ordinal,
            question_id=question_id,
            selected_index=selected_index,
            client_timestamp=client_timestamp,
            server_timestamp=server_timestamp,
        ))

    def _finish(self, attempt: Attempt, status: str, server_timestamp: int, score: int):
        attempt.status = status
        attempt.end_time_ms = server_timestamp
        attempt.score = score

    def _result(self, attempt: Attempt, server_timestamp: int) -> SessionResult:
        return SessionResult(
            session_id=attempt.session_id,
            score=attempt.score,
            total_questions=attempt.total_questions,
            completion_time_ms=server_timestamp - attempt.start_time_ms,
            is_winner=attempt.is_winner,
        )

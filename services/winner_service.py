from typing import Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update, case
from models.quiz import Quiz, QuizStatus
from models.session import Attempt
from models.winner import Winner, RewardClaim, ClaimStatus
from core.logger import logger
from utils.rewards import RewardAllocation, resolve_reward


class WinnerService:
    """
    Hands out winner ranks for all-correct completions.

    Runs inside the caller's transaction and never commits; the attempt's
    completion and its winner records land together or not at all.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def claim_slot(self, quiz_id: int) -> Optional[Tuple[int, int, str, list]]:
        """
        Atomically take the next winner slot of a quiz.

        A single guarded UPDATE increments `current_winners` only while it is
        below `winner_limit` and returns the post-increment value, which is
        the new rank. Concurrent callers serialize on the quiz row, so ranks
        are never shared and the counter never passes the limit. The same
        statement closes the quiz when the last slot goes.

        Returns (rank, winner_limit, reward_amount, reward_pools), or None
        when no slot was left.
        """
        stmt = (
            update(Quiz)
            .where(
                Quiz.id == quiz_id,
                Quiz.status == QuizStatus.ACTIVE,
                Quiz.current_winners < Quiz.winner_limit,
            )
            .values(
                current_winners=Quiz.current_winners + 1,
                status=case(
                    (Quiz.current_winners + 1 >= Quiz.winner_limit, QuizStatus.COMPLETED),
                    else_=Quiz.status,
                ),
            )
            .returning(Quiz.current_winners, Quiz.winner_limit, Quiz.reward_amount, Quiz.reward_pools)
            .execution_options(synchronize_session=False)
        )
        row = (await self.db.execute(stmt)).first()
        if row is None:
            return None
        return row[0], row[1], row[2], row[3]

    async def assign(self, attempt: Attempt) -> Optional[RewardAllocation]:
        """Claim a slot for a completed attempt and record its reward.

        None means the attempt finished correctly but every slot was taken.
        """
        claimed = await self.claim_slot(attempt.quiz_id)
        if claimed is None:
            logger.info("Winner slot lost", quiz_id=attempt.quiz_id, wallet=attempt.wallet_address)
            return None

        rank, winner_limit, reward_amount, pools = claimed
        allocation = resolve_reward(rank, int(reward_amount), winner_limit, pools)
        if allocation.needs_review:
            logger.warning(
                "No reward tier covers rank, paid flat share",
                quiz_id=attempt.quiz_id,
                rank=rank,
                reward=allocation.reward_amount,
            )

        winner = Winner(
            quiz_id=attempt.quiz_id,
            attempt_id=attempt.id,
            wallet_address=attempt.wallet_address,
            rank=rank,
            completion_time_ms=attempt.completion_time_ms,
            reward_amount=str(allocation.reward_amount),
        )
        self.db.add(winner)
        await self.db.flush()

        claim = RewardClaim(
            quiz_id=attempt.quiz_id,
            winner_id=winner.id,
            wallet_address=attempt.wallet_address,
            pool_tier=allocation.pool_tier,
            rank_in_pool=allocation.rank_in_pool,
            reward_amount=str(allocation.reward_amount),
            needs_review=allocation.needs_review,
            status=ClaimStatus.PENDING,
        )
        self.db.add(claim)
        await self.db.flush()

        logger.info(
            "Winner slot claimed",
            quiz_id=attempt.quiz_id,
            wallet=attempt.wallet_address,
            rank=rank,
            tier=allocation.pool_tier,
            reward=allocation.reward_amount,
        )
        return allocation.model_copy(update={"claim_id": claim.id})

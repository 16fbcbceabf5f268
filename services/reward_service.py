import json
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from redis.asyncio import Redis
from redis.exceptions import RedisError
from models.quiz import Quiz
from models.winner import RewardClaim, Winner, ClaimStatus
from core.config import settings
from core.exceptions import ConflictError, NotFoundError
from core.logger import logger
from utils.rewards import RewardAllocation


class RewardService:
    def __init__(self, db: AsyncSession, redis: Optional[Redis] = None):
        self.db = db
        self.redis = redis

    async def enqueue_settlement(self, allocation: RewardAllocation) -> bool:
        """
        Notify the on-chain payout worker about a new pending claim.

        The claim row is already committed with status `pending`; the worker
        can always rebuild its queue from the table, so a failed push is
        logged and not retried here.
        """
        if self.redis is None or allocation.claim_id is None:
            return False

        payload = json.dumps({
            "claimId": allocation.claim_id,
            "rank": allocation.rank,
            "poolTier": allocation.pool_tier,
            "rewardAmount": str(allocation.reward_amount),
        })
        try:
            await self.redis.rpush(settings.SETTLEMENT_QUEUE_KEY, payload)
        except RedisError as e:
            logger.error("Settlement hand-off failed", claim_id=allocation.claim_id, error=str(e))
            return False
        logger.info("Claim queued for settlement", claim_id=allocation.claim_id)
        return True

    async def get_claims(self, wallet_address: str) -> List[dict]:
        result = await self.db.execute(
            select(RewardClaim, Quiz.title, Quiz.reward_token, Winner.rank)
            .join(Quiz, Quiz.id == RewardClaim.quiz_id)
            .join(Winner, Winner.id == RewardClaim.winner_id)
            .filter(RewardClaim.wallet_address == wallet_address)
            .order_by(RewardClaim.created_at.desc(), RewardClaim.id.desc())
        )
        return [{
            "id": claim.id,
            "quizId": claim.quiz_id,
            "quizTitle": title,
            "amount": claim.reward_amount,
            "token": token,
            "rank": rank,
            "poolTier": claim.pool_tier,
            "rankInPool": claim.rank_in_pool,
            "status": claim.status,
            "needsReview": claim.needs_review,
            "txHash": claim.tx_hash,
            "completedAt": claim.created_at,
        } for claim, title, token, rank in result.all()]

    async def mark_claimed(self, claim_id: int, wallet_address: str, tx_hash: str) -> RewardClaim:
        """Record the settlement transaction reported back for a claim."""
        result = await self.db.execute(
            select(RewardClaim)
            .filter(RewardClaim.id == claim_id, RewardClaim.wallet_address == wallet_address)
            .with_for_update()
        )
        claim = result.scalar_one_or_none()
        if not claim:
            await self.db.rollback()
            raise NotFoundError("Reward not found", code="CLAIM_NOT_FOUND")
        if claim.status == ClaimStatus.CLAIMED:
            await self.db.rollback()
            raise ConflictError("Reward already claimed", code="ALREADY_CLAIMED")

        claim.status = ClaimStatus.CLAIMED
        claim.tx_hash = tx_hash
        claim.claimed_at = datetime.utcnow()
        await self.db.execute(
            update(Winner).where(Winner.id == claim.winner_id).values(tx_hash=tx_hash)
        )
        await self.db.commit()
        logger.info("Reward claimed", claim_id=claim_id, wallet=wallet_address, tx_hash=tx_hash)
        return claim

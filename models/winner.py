from sqlalchemy import Column, Integer, String, BigInteger, ForeignKey, Boolean, DateTime, UniqueConstraint
from models.base import Base, TimestampMixin


class ClaimStatus:
    PENDING = "pending"
    CLAIMED = "claimed"


class Winner(Base, TimestampMixin):
    __tablename__ = "winners"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id"), index=True, nullable=False)
    attempt_id = Column(Integer, ForeignKey("attempts.id"), unique=True, nullable=False)
    wallet_address = Column(String(64), index=True, nullable=False)
    rank = Column(Integer, nullable=False)
    completion_time_ms = Column(BigInteger, nullable=False)
    reward_amount = Column(String(78), nullable=False)
    tx_hash = Column(String(128), nullable=True)

    __table_args__ = (
        UniqueConstraint("quiz_id", "rank", name="uq_winner_quiz_rank"),
    )


class RewardClaim(Base, TimestampMixin):
    __tablename__ = "reward_claims"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id"), index=True, nullable=False)
    winner_id = Column(Integer, ForeignKey("winners.id"), unique=True, nullable=False)
    wallet_address = Column(String(64), index=True, nullable=False)
    pool_tier = Column(Integer, nullable=False)   # 0 when no tier covered the rank
    rank_in_pool = Column(Integer, nullable=False)
    reward_amount = Column(String(78), nullable=False)
    needs_review = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default=ClaimStatus.PENDING, nullable=False, index=True)
    tx_hash = Column(String(128), nullable=True)
    claimed_at = Column(DateTime, nullable=True)

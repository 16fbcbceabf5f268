from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, Numeric, cast
from models.quiz import Quiz
from models.session import Attempt
from models.winner import Winner
from core.config import settings
from core.exceptions import NotFoundError

PERIODS = ("all", "week", "month")


class StatsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_quiz_leaderboard(self, quiz_id: int) -> dict:
        """Winners of one quiz, fastest completion first."""
        quiz = (await self.db.execute(
            select(Quiz).filter(Quiz.id == quiz_id).execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if not quiz:
            raise NotFoundError("Quiz not found", code="QUIZ_NOT_FOUND")

        result = await self.db.execute(
            select(Winner)
            .filter(Winner.quiz_id == quiz_id)
            .order_by(Winner.completion_time_ms.asc(), Winner.created_at.asc(), Winner.id.asc())
        )
        winners = result.scalars().all()

        return {
            "quizTitle": quiz.title,
            "rewardToken": quiz.reward_token,
            "totalWinners": quiz.current_winners,
            "entries": [{
                "position": position,
                "rank": w.rank,
                "wallet": w.wallet_address,
                "completionTimeMs": w.completion_time_ms,
                "rewardAmount": w.reward_amount,
            } for position, w in enumerate(winners, 1)],
        }

    def _period_start(self, period: str) -> Optional[datetime]:
        now = datetime.utcnow()
        if period == "week":
            return now - timedelta(days=7)
        if period == "month":
            return now - timedelta(days=30)
        return None

    async def get_global_leaderboard(self, period: str = "all", limit: Optional[int] = None) -> List[dict]:
        """
        Wallets ranked by wins, then by total rewards.

        Wallets that attempted but never won are included with zero wins.
        """
        limit = min(limit or settings.LEADERBOARD_DEFAULT_LIMIT, settings.LEADERBOARD_MAX_LIMIT)
        start_date = self._period_start(period)

        # 1. Aggregate winners per wallet
        win_q = select(
            Winner.wallet_address,
            func.count(Winner.id).label("wins"),
            func.sum(cast(Winner.reward_amount, Numeric(78, 0))).label("rewards"),
            func.avg(Winner.completion_time_ms).label("avg_time"),
            func.min(Winner.rank).label("best_rank"),
        )
        if start_date:
            win_q = win_q.filter(Winner.created_at >= start_date)
        win_rows = (await self.db.execute(win_q.group_by(Winner.wallet_address))).all()

        # 2. Attempts per wallet
        att_q = select(Attempt.wallet_address, func.count(Attempt.id).label("attempts"))
        if start_date:
            att_q = att_q.filter(Attempt.created_at >= start_date)
        att_rows = (await self.db.execute(att_q.group_by(Attempt.wallet_address))).all()

        stats = {}
        for row in att_rows:
            stats[row.wallet_address] = {
                "walletAddress": row.wallet_address,
                "totalWins": 0,
                "totalRewards": 0,
                "totalAttempts": row.attempts,
                "avgCompletionTime": None,
                "bestRank": 0,
            }
        for row in win_rows:
            entry = stats.setdefault(row.wallet_address, {
                "walletAddress": row.wallet_address,
                "totalAttempts": 0,
            })
            entry.update({
                "totalWins": row.wins,
                "totalRewards": int(row.rewards or 0),
                "avgCompletionTime": round(row.avg_time) if row.avg_time is not None else None,
                "bestRank": row.best_rank,
            })

        board = sorted(stats.values(), key=lambda e: (-e["totalWins"], -e["totalRewards"], e["walletAddress"]))
        board = board[:limit]
        for rank, entry in enumerate(board, 1):
            entry["rank"] = rank
            entry["totalRewards"] = str(entry["totalRewards"])
        return board

    async def get_wallet_stats(self, wallet_address: str) -> dict:
        attempts = (await self.db.execute(
            select(func.count(Attempt.id)).filter(Attempt.wallet_address == wallet_address)
        )).scalar() or 0

        row = (await self.db.execute(
            select(
                func.count(Winner.id),
                func.sum(cast(Winner.reward_amount, Numeric(78, 0))),
            ).filter(Winner.wallet_address == wallet_address)
        )).one()

        return {
            "totalAttempts": attempts,
            "totalWins": row[0] or 0,
            "totalRewards": str(int(row[1] or 0)),
        }

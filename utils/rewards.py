from typing import List, Optional, Sequence

from pydantic import BaseModel


class RewardAllocation(BaseModel):
    """Reward resolved for one winner rank."""
    rank: int
    pool_tier: int          # 0 when the flat split fallback was used
    rank_in_pool: int
    reward_amount: int
    needs_review: bool = False
    claim_id: Optional[int] = None


def _pool_field(pool, name: str, alias: str):
    if isinstance(pool, dict):
        return pool.get(alias, pool.get(name))
    return getattr(pool, name)


def implicit_pools(winner_limit: int) -> List[dict]:
    """A quiz without configured pools pays every winner the same share."""
    return [{"tier": 1, "name": "Winners", "winnerCount": winner_limit, "percentage": 100}]


def calculate_reward_per_winner(total_amount: int, winner_limit: int) -> int:
    if winner_limit <= 0:
        return 0
    return total_amount // winner_limit


def pool_reward_per_winner(total_amount: int, percentage: int, winner_count: int) -> int:
    if winner_count <= 0:
        return 0
    pool_amount = total_amount * percentage // 100
    return pool_amount // winner_count


def resolve_reward(
    rank: int,
    total_amount: int,
    winner_limit: int,
    pools: Optional[Sequence] = None,
) -> RewardAllocation:
    """
    Find the tier whose rank band [prior+1, prior+winnerCount] contains `rank`.

    Pools are walked in the given order. When no band covers the rank the
    quiz is misconfigured; the winner still gets a flat share of the total
    and the allocation is flagged for operator review.
    """
    pools = list(pools) if pools else implicit_pools(winner_limit)

    prior = 0
    for pool in pools:
        winner_count = _pool_field(pool, "winner_count", "winnerCount")
        start, end = prior + 1, prior + winner_count
        if start <= rank <= end:
            return RewardAllocation(
                rank=rank,
                pool_tier=_pool_field(pool, "tier", "tier"),
                rank_in_pool=rank - prior,
                reward_amount=pool_reward_per_winner(
                    total_amount, _pool_field(pool, "percentage", "percentage"), winner_count
                ),
            )
        prior = end

    return RewardAllocation(
        rank=rank,
        pool_tier=0,
        rank_in_pool=0,
        reward_amount=calculate_reward_per_winner(total_amount, winner_limit),
        needs_review=True,
    )


def total_payout(total_amount: int, pools: Sequence) -> int:
    """Sum paid out if every slot of every pool is filled."""
    paid = 0
    for pool in pools:
        winner_count = _pool_field(pool, "winner_count", "winnerCount")
        percentage = _pool_field(pool, "percentage", "percentage")
        paid += winner_count * pool_reward_per_winner(total_amount, percentage, winner_count)
    return paid

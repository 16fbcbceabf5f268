import asyncio

import pytest
from sqlalchemy import select

from models.quiz import Quiz, QuizStatus
from models.session import Attempt, AttemptStatus
from models.winner import RewardClaim, Winner
from services.answer_service import AnswerService
from services.session_service import SessionService
from services.winner_service import WinnerService

from conftest import wallet

ONE_QUESTION = [{"id": "only", "text": "1+1?", "options": ["2", "3"], "correctIndex": 0}]


@pytest.mark.asyncio
async def test_concurrent_finishers_never_exceed_winner_limit(make_quiz, session_factory, clock):
    quiz = await make_quiz(questions=ONE_QUESTION, winnerLimit=3, rewardAmount="300")
    players = [wallet(n) for n in range(1, 9)]

    sessions = {}
    for player in players:
        async with session_factory() as session:
            response = await SessionService(session, clock=clock).start_session(quiz.id, player)
            sessions[player] = response.session_id

    clock.advance(1000)

    async def finish(player):
        async with session_factory() as session:
            return await AnswerService(session, clock=clock).submit_answer(sessions[player], player, "only", 0)

    outcomes = await asyncio.gather(*(finish(p) for p in players))

    assert all(o.status == AttemptStatus.COMPLETED for o in outcomes)
    ranks = sorted(o.result.rank for o in outcomes if o.result.is_winner)
    assert ranks == [1, 2, 3]
    assert all(o.result.reward_amount == "100" for o in outcomes if o.result.is_winner)

    async with session_factory() as session:
        stored = await session.get(Quiz, quiz.id)
        assert stored.current_winners == 3
        assert stored.status == QuizStatus.COMPLETED

        winners = (await session.execute(select(Winner))).scalars().all()
        assert sorted(w.rank for w in winners) == [1, 2, 3]
        assert len((await session.execute(select(RewardClaim))).scalars().all()) == 3

        flagged = (await session.execute(select(Attempt).filter(Attempt.is_winner.is_(True)))).scalars().all()
        assert {a.wallet_address for a in flagged} == {w.wallet_address for w in winners}


@pytest.mark.asyncio
async def test_claim_slot_stops_at_limit(make_quiz, db):
    quiz = await make_quiz(winnerLimit=2)
    service = WinnerService(db)

    first = await service.claim_slot(quiz.id)
    second = await service.claim_slot(quiz.id)
    third = await service.claim_slot(quiz.id)
    await db.commit()

    assert first[0] == 1
    assert second[0] == 2
    assert third is None


@pytest.mark.asyncio
async def test_uncovered_rank_is_flagged_for_review(make_quiz, db, clock):
    quiz = await make_quiz(questions=ONE_QUESTION, winnerLimit=2, rewardAmount="100")
    # Misconfigured after creation: the only tier covers rank 1
    stored = await db.get(Quiz, quiz.id)
    stored.reward_pools = [{"tier": 1, "name": "Top", "winnerCount": 1, "percentage": 100}]
    await db.commit()

    for player in (wallet(1), wallet(2)):
        response = await SessionService(db, clock=clock).start_session(quiz.id, player)
        clock.advance(1000)
        await AnswerService(db, clock=clock).submit_answer(response.session_id, player, "only", 0)

    claims = (await db.execute(select(RewardClaim).order_by(RewardClaim.id))).scalars().all()
    assert [(c.pool_tier, c.reward_amount, c.needs_review) for c in claims] == [
        (1, "100", False),
        (0, "50", True),
    ]

"""
Quiz configuration checks.

Every check runs on its own and appends to a shared error list, so a quiz
editor can show all problems at once. Inputs are plain dicts in the
camelCase shape the API receives; nothing here touches storage.
"""
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from core.config import settings

_TOKEN_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str]

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=errors)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_valid_option_count(count: int) -> bool:
    return settings.MIN_OPTIONS <= count <= settings.MAX_OPTIONS


def is_valid_correct_index(correct_index: int, options_length: int) -> bool:
    return 0 <= correct_index < options_length


def is_valid_token_address(address: Optional[str]) -> bool:
    """ERC-20 style address: 0x followed by 40 hex characters."""
    if not address or not isinstance(address, str):
        return False
    return bool(_TOKEN_ADDRESS_RE.match(address))


def validate_question(question: Dict[str, Any]) -> ValidationResult:
    """Check one question. Returns every violated rule."""
    errors = []

    text = question.get("text")
    if not isinstance(text, str) or not text.strip():
        errors.append("Question text is required")

    options = question.get("options")
    if not isinstance(options, list):
        errors.append("Question must have options array")
    else:
        if len(options) < settings.MIN_OPTIONS:
            errors.append(f"Question must have at least {settings.MIN_OPTIONS} options")
        if len(options) > settings.MAX_OPTIONS:
            errors.append(f"Question must have at most {settings.MAX_OPTIONS} options")
        if any(not isinstance(opt, str) or not opt.strip() for opt in options):
            errors.append("All options must have non-empty text")

    correct_index = question.get("correctIndex")
    if correct_index is None:
        errors.append("Correct answer index is required")
    elif not _is_int(correct_index):
        errors.append("Correct answer index must be an integer")
    elif isinstance(options, list):
        if correct_index < 0:
            errors.append("Correct answer index must be non-negative")
        if correct_index >= len(options):
            errors.append("Correct answer index must be within options range")

    return ValidationResult.from_errors(errors)


def _amount_errors(raw: Any, label: str) -> List[str]:
    """A token amount is a positive integer in the token's smallest unit."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return [f"{label} is required"]
    try:
        amount = Decimal(str(raw).strip())
    except InvalidOperation:
        return [f"{label} must be a valid number"]
    if not amount.is_finite():
        return [f"{label} must be a valid number"]
    if amount <= 0:
        return [f"{label} must be positive"]
    if amount != amount.to_integral_value():
        return [f"{label} must be a whole number of the token's smallest unit"]
    return []


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        return datetime.fromisoformat(value.strip())
    return None


def validate_reward_pools(pools: List[Dict[str, Any]], winner_limit: Any) -> List[str]:
    """Pools must tile ranks 1..winnerLimit exactly and share 100% between them."""
    errors = []
    tiers = set()
    total_percentage = 0
    total_winners = 0

    for index, pool in enumerate(pools, 1):
        winner_count = pool.get("winnerCount")
        percentage = pool.get("percentage")
        tier = pool.get("tier")

        if not _is_int(tier):
            errors.append(f"Reward pool {index}: tier must be an integer")
        elif tier in tiers:
            errors.append(f"Reward pool {index}: tier {tier} is defined twice")
        else:
            tiers.add(tier)

        if not _is_int(winner_count) or winner_count < 1:
            errors.append(f"Reward pool {index}: winner count must be at least 1")
        else:
            total_winners += winner_count

        if not _is_int(percentage) or not 0 < percentage <= 100:
            errors.append(f"Reward pool {index}: percentage must be between 1 and 100")
        else:
            total_percentage += percentage

    if errors:
        return errors

    if total_percentage != 100:
        errors.append(f"Reward pool percentages must add up to 100 (got {total_percentage})")
    if _is_int(winner_limit) and total_winners != winner_limit:
        errors.append(
            f"Reward pool winner counts must add up to the winner limit "
            f"({total_winners} != {winner_limit})"
        )
    return errors


def validate_quiz_config(config: Dict[str, Any]) -> ValidationResult:
    """
    Validate a quiz definition before it becomes playable.

    - Title is required and short
    - At least one question, each individually valid
    - Reward token is a valid address, reward amount is positive
    - Winner limit and time per question are within bounds
    - Optional stake requirement, reward pools and schedule are consistent
    """
    errors = []

    # 1. Title
    title = config.get("title")
    if not isinstance(title, str) or not title.strip():
        errors.append("Quiz title is required")
    elif len(title) > settings.MAX_TITLE_LENGTH:
        errors.append(f"Quiz title must be {settings.MAX_TITLE_LENGTH} characters or less")

    # 2. Questions
    questions = config.get("questions")
    if not isinstance(questions, list):
        errors.append("Quiz must have questions array")
    elif not questions:
        errors.append("Quiz must have at least one question")
    else:
        for index, question in enumerate(questions, 1):
            if not isinstance(question, dict):
                errors.append(f"Question {index}: Question must be an object")
                continue
            question_id = question.get("id")
            if question_id is not None and (not isinstance(question_id, str) or not question_id.strip()):
                errors.append(f"Question {index}: Question id must be a non-empty string")
            for err in validate_question(question).errors:
                errors.append(f"Question {index}: {err}")

        ids = [q["id"] for q in questions if isinstance(q, dict) and isinstance(q.get("id"), str)]
        if len(ids) != len(set(ids)):
            errors.append("Question ids must be unique")

    # 3. Reward token and amount
    reward_token = config.get("rewardToken")
    if not reward_token:
        errors.append("Reward token address is required")
    elif not is_valid_token_address(reward_token):
        errors.append("Reward token must be a valid ERC-20 address")

    errors.extend(_amount_errors(config.get("rewardAmount"), "Reward amount"))

    # 4. Winner limit
    winner_limit = config.get("winnerLimit")
    if winner_limit is None:
        errors.append("Winner limit is required")
    elif not _is_int(winner_limit):
        errors.append("Winner limit must be an integer")
    elif winner_limit < 1:
        errors.append("Winner limit must be at least 1")
    elif winner_limit > settings.MAX_WINNER_LIMIT:
        errors.append(f"Winner limit must be {settings.MAX_WINNER_LIMIT} or less")

    # 5. Time per question (optional)
    time_per_question = config.get("timePerQuestion")
    if time_per_question is not None:
        if not _is_int(time_per_question):
            errors.append("Time per question must be an integer number of seconds")
        elif time_per_question < settings.MIN_TIME_PER_QUESTION:
            errors.append(f"Time per question must be at least {settings.MIN_TIME_PER_QUESTION} seconds")
        elif time_per_question > settings.MAX_TIME_PER_QUESTION:
            errors.append(f"Time per question must be {settings.MAX_TIME_PER_QUESTION} seconds or less")

    # 6. Stake requirement (optional)
    stake = config.get("stakeRequirement")
    if stake and not isinstance(stake, dict):
        errors.append("Stake requirement must be an object")
    elif stake:
        if not is_valid_token_address(stake.get("token")):
            errors.append("Stake token must be a valid ERC-20 address")
        errors.extend(_amount_errors(stake.get("amount"), "Stake amount"))

    # 7. Reward pools (optional)
    pools = config.get("rewardPools")
    if pools:
        if not isinstance(pools, list) or not all(isinstance(p, dict) for p in pools):
            errors.append("Reward pools must be a list of objects")
        else:
            errors.extend(validate_reward_pools(pools, winner_limit))

    # 8. Schedule (optional)
    start_raw, end_raw = config.get("startTime"), config.get("endTime")
    start = end = None
    try:
        start = _parse_datetime(start_raw)
    except ValueError:
        errors.append("Start time must be an ISO-8601 datetime")
    try:
        end = _parse_datetime(end_raw)
    except ValueError:
        errors.append("End time must be an ISO-8601 datetime")
    if start and end:
        try:
            if end <= start:
                errors.append("End time must be after start time")
        except TypeError:
            errors.append("Start and end time must both include a timezone or both omit it")

    return ValidationResult.from_errors(errors)

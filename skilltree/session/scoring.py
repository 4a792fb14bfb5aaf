"""
Scoring and experience for completed attempts.

Score is the integer percentage of first-pass questions answered correctly, rounded
half up. Experience rewards accuracy and speed and penalises retries and repeats.
"""
from __future__ import annotations

from dataclasses import dataclass

IDEAL_SECONDS_PER_QUESTION = 30


def compute_score(correct: int, total: int) -> int:
    """round(100 * correct / total), halves rounded up; 0 for an empty attempt."""
    if total <= 0:
        return 0
    correct = max(0, min(correct, total))
    return (200 * correct + total) // (2 * total)


def is_passed(score: int, passing_score: int) -> bool:
    return score >= passing_score


@dataclass(frozen=True)
class ExperienceBreakdown:
    """How an experience award was put together."""

    base: float
    accuracy_bonus: float
    speed_bonus: float
    perfect_bonus: float
    retry_multiplier: float
    repeat_multiplier: float
    final: int


def calculate_experience(
    base_experience: int,
    total_questions: int,
    correct_answers: int,
    total_answers: int,
    time_elapsed_seconds: float,
    is_first_attempt: bool = True,
    ideal_seconds_per_question: int = IDEAL_SECONDS_PER_QUESTION,
) -> ExperienceBreakdown:
    """
    Experience earned by an attempt.

    Components, as fractions of ``base_experience``:
        - 0.6 flat
        - up to 0.3 for accuracy
        - up to 0.2 for speed against the ideal time, falling to 0 at twice the ideal
        - 0.2 for a perfect attempt with no retries

    The sum is scaled down by retries (at most halved) and halved again on a repeat
    attempt. The result is rounded and never below 1.

    Args:
        base_experience: Nominal experience of the unit or final test
        total_questions: First-pass question count
        correct_answers: Questions right on the first pass
        total_answers: Every answer given, review answers included
        time_elapsed_seconds: Wall time of the attempt
        is_first_attempt: False when the learner already passed this unit
        ideal_seconds_per_question: Target pace

    Returns:
        ExperienceBreakdown with the final award
    """
    if total_questions <= 0:
        return ExperienceBreakdown(0, 0, 0, 0, 1.0, 1.0, final=1)

    incorrect = total_questions - correct_answers
    accuracy = correct_answers / total_questions
    retries = max(0, total_answers - total_questions)

    base = base_experience * 0.6
    accuracy_bonus = base_experience * 0.3 * accuracy

    ideal_total = ideal_seconds_per_question * total_questions
    ratio = min(time_elapsed_seconds / ideal_total, 2.0)
    speed_bonus = max(0.0, base_experience * 0.1 * (2 - ratio))

    perfect_bonus = base_experience * 0.2 if incorrect == 0 and retries == 0 else 0.0

    retry_multiplier = max(0.5, 1 - (retries / total_questions) * 0.5)
    repeat_multiplier = 1.0 if is_first_attempt else 0.5

    total = (base + accuracy_bonus + speed_bonus + perfect_bonus) * retry_multiplier * repeat_multiplier
    final = max(1, int(total + 0.5))

    return ExperienceBreakdown(
        base=base,
        accuracy_bonus=accuracy_bonus,
        speed_bonus=speed_bonus,
        perfect_bonus=perfect_bonus,
        retry_multiplier=retry_multiplier,
        repeat_multiplier=repeat_multiplier,
        final=final,
    )

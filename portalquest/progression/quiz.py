"""Character quiz generation and scoring.

A quiz is ten questions about ten distinct characters.  The question
type rotates with the position in the quiz:

    0  "What species is <name>?"
    1  "Where is <name> from?"
    2  "Who is this character?"   (shows the image)

Each question has the right answer plus up to three distinct wrong ones,
shuffled.

XP
--
15 XP per finished quiz, +20 at 80% correct or better, otherwise +10 at
60% or better.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from ..api.models import Character

QUIZ_SIZE = 10
WRONG_OPTIONS = 3

XP_QUIZ_BASE = 15
XP_QUIZ_GREAT = 20     # >= 80% correct
XP_QUIZ_GOOD = 10      # >= 60% correct


class NotEnoughCharactersError(ValueError):
    pass


@dataclass(frozen=True)
class QuizQuestion:
    id: int
    question: str
    options: tuple[str, ...]
    correct_answer: str
    image: str = ""

    def is_correct(self, answer: str) -> bool:
        return answer == self.correct_answer


def quiz_xp_reward(correct: int, total: int) -> int:
    """XP for a finished quiz with *correct* out of *total* right."""
    xp = XP_QUIZ_BASE
    if total <= 0:
        return xp
    ratio = correct / total
    if ratio >= 0.8:
        xp += XP_QUIZ_GREAT
    elif ratio >= 0.6:
        xp += XP_QUIZ_GOOD
    return xp


def _pick_distinct(values: list[str], rng: np.random.Generator, k: int) -> list[str]:
    unique = list(dict.fromkeys(v for v in values if v))
    if len(unique) <= k:
        return unique
    idx = rng.choice(len(unique), size=k, replace=False)
    return [unique[i] for i in idx]


def _shuffled(options: list[str], rng: np.random.Generator) -> tuple[str, ...]:
    order = rng.permutation(len(options))
    return tuple(options[i] for i in order)


def _species_question(qid, character, roster, rng) -> QuizQuestion:
    wrong = _pick_distinct(
        [c.species for c in roster if c.species != character.species], rng, WRONG_OPTIONS,
    )
    return QuizQuestion(
        id=qid,
        question=f"What species is {character.name}?",
        options=_shuffled([character.species, *wrong], rng),
        correct_answer=character.species,
        image=character.image,
    )


def _origin_question(qid, character, roster, rng) -> QuizQuestion:
    wrong = _pick_distinct(
        [c.origin for c in roster if c.origin != character.origin], rng, WRONG_OPTIONS,
    )
    return QuizQuestion(
        id=qid,
        question=f"Where is {character.name} from?",
        options=_shuffled([character.origin, *wrong], rng),
        correct_answer=character.origin,
        image=character.image,
    )


def _image_question(qid, character, roster, rng) -> QuizQuestion:
    wrong = _pick_distinct(
        [c.name for c in roster if c.id != character.id and c.name != character.name],
        rng, WRONG_OPTIONS,
    )
    return QuizQuestion(
        id=qid,
        question="Who is this character?",
        options=_shuffled([character.name, *wrong], rng),
        correct_answer=character.name,
        image=character.image,
    )


_QUESTION_BUILDERS = (_species_question, _origin_question, _image_question)


def generate_quiz(
    characters: Sequence[Character],
    rng: np.random.Generator | None = None,
    size: int = QUIZ_SIZE,
) -> list[QuizQuestion]:
    """Build *size* questions about randomly chosen characters."""
    if len(characters) < size:
        raise NotEnoughCharactersError(
            f"need at least {size} characters, got {len(characters)}"
        )
    rng = rng or np.random.default_rng()
    roster = list(characters)
    picks = rng.choice(len(roster), size=size, replace=False)
    return [
        _QUESTION_BUILDERS[i % len(_QUESTION_BUILDERS)](i + 1, roster[idx], roster, rng)
        for i, idx in enumerate(picks)
    ]


def score_quiz(questions: Sequence[QuizQuestion], answers: Sequence[str]) -> int:
    """Number of *answers* matching their question (extra answers ignored)."""
    return sum(1 for q, a in zip(questions, answers) if q.is_correct(a))

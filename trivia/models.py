"""
Core data models for the Trivia Bot.
"""
import random
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Optional, Sequence, Tuple


class QuestionKind(Enum):
    """Answer format of a question."""
    MULTIPLE = "multiple"


class Mode(Enum):
    """Active question source as reported to players."""
    API = "API"
    CSV = "CSV"


class SupplyState(Enum):
    """States of the question supply state machine."""
    API_ACTIVE = "api_active"
    API_COOLDOWN = "api_cooldown"
    CSV_MANUAL = "csv_manual"


@dataclass(frozen=True)
class Question:
    """Represents a single trivia question with its shuffled answer set."""
    text: str
    correct_answer: str
    distractors: Tuple[str, ...]
    kind: QuestionKind = QuestionKind.MULTIPLE
    answers: Tuple[str, ...] = ()
    source: Mode = Mode.API

    @classmethod
    def build(
        cls,
        text: str,
        correct_answer: str,
        distractors: Sequence[str],
        source: Mode = Mode.API,
        rng: Optional[random.Random] = None
    ) -> "Question":
        """
        Validate a multiple-choice question and shuffle its four answers.

        Args:
            text: Question text
            correct_answer: The single correct answer
            distractors: Exactly three incorrect answers
            source: Where the question came from
            rng: Random generator used for the shuffle

        Raises:
            ValueError: If the answer set is not four distinct entries
        """
        if not text or not text.strip():
            raise ValueError("Question text cannot be empty")
        if not correct_answer or not correct_answer.strip():
            raise ValueError("Correct answer cannot be empty")
        if len(distractors) != 3:
            raise ValueError(f"Expected 3 distractors, got {len(distractors)}")

        answers = [correct_answer, *distractors]
        if len({answer.strip().lower() for answer in answers}) != len(answers):
            raise ValueError(f"Answers must be distinct: {answers}")

        # Uniform permutation, so the correct answer has no fixed slot
        (rng or random).shuffle(answers)

        return cls(
            text=text,
            correct_answer=correct_answer,
            distractors=tuple(distractors),
            kind=QuestionKind.MULTIPLE,
            answers=tuple(answers),
            source=source
        )


@dataclass
class TriviaSettings:
    """Tunable parameters for the question supply and the game."""
    cache_size: int = 10
    max_questions: int = 15
    max_fetch_attempts: int = 3
    backoff_base_seconds: float = 2.0
    cooldown_seconds: float = 60.0
    request_timeout_seconds: float = 5.0
    provider_url: str = "https://opentdb.com/api.php"
    category: int = 22
    question_type: str = "multiple"
    dataset_path: str = "./geography_questions.csv"


@dataclass
class CacheState:
    """Mutable state owned by the question cache controller."""
    mode: Mode = Mode.API
    buffer: Deque[Question] = field(default_factory=deque)
    in_flight_fetch: bool = False
    consecutive_failures: int = 0
    cooldown_until: Optional[float] = None


@dataclass
class GameSession:
    """Score and progress of the single running game."""
    score: int = 0
    questions_answered: int = 0
    current_question: Optional[Question] = None


@dataclass
class ServedQuestion:
    """A question handed to the player, plus any mode change it caused."""
    question: Question
    mode: Mode
    notice: Optional[str] = None

    @property
    def mode_changed(self) -> bool:
        return self.notice is not None


@dataclass
class AnswerResult:
    """Outcome of grading a submitted answer."""
    correct: bool
    correct_answer: str
    score: int
    questions_answered: int
    game_over: bool


@dataclass
class ScoreSummary:
    """Snapshot of the running score."""
    score: int
    questions_answered: int
    max_questions: int
    game_over: bool
    mode: Mode


@dataclass
class ModeChange:
    """Result of a manual mode switch."""
    mode: Mode
    state: SupplyState
    message: str
    buffered: int = 0

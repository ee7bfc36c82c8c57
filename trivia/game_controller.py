"""
Game controller for the Trivia Bot.
Tracks score and progress for the single running game and routes question
requests through the question cache.
"""
import logging
from typing import Optional, Union

from .errors import MaxQuestionsReached, NoActiveQuestion
from .models import AnswerResult, GameSession, Mode, ModeChange, ScoreSummary, ServedQuestion, TriviaSettings
from .question_cache import QuestionCacheController
from .question_store import LocalQuestionStore
from .remote_fetcher import RemoteFetcher


def parse_mode(mode: Union[str, Mode]) -> Mode:
    """
    Convert user input into a Mode.

    Raises:
        ValueError: If the input names neither API nor CSV
    """
    if isinstance(mode, Mode):
        return mode
    try:
        return Mode((mode or "").strip().upper())
    except ValueError:
        raise ValueError('Invalid mode. Use "API" or "CSV".') from None


class GameController:
    """
    Orchestrates the trivia game.

    This class is the only writer of the GameSession. Question supply is
    delegated to the QuestionCacheController, which decides whether a
    question comes from the remote API buffer or the local CSV store.
    """

    def __init__(
        self,
        cache: QuestionCacheController,
        settings: Optional[TriviaSettings] = None
    ):
        """
        Initialize the game controller.

        Args:
            cache: Question supply used for every request
            settings: Game limits, defaults to the cache's settings
        """
        self.logger = logging.getLogger(__name__)
        self.cache = cache
        self.settings = settings or cache.settings
        self.session = GameSession()

        self.logger.info("GameController initialized")

    @classmethod
    def from_settings(cls, settings: TriviaSettings) -> "GameController":
        """Build the full question supply stack from settings."""
        store = LocalQuestionStore(settings.dataset_path)
        fetcher = RemoteFetcher(settings, store.registry)
        cache = QuestionCacheController(fetcher, store, settings)
        return cls(cache, settings)

    async def start(self) -> None:
        """Load the local dataset and warm the API buffer."""
        self.cache.store.load()
        await self.cache.refill()

    @property
    def is_game_over(self) -> bool:
        return self.session.questions_answered >= self.settings.max_questions

    async def get_question(self) -> ServedQuestion:
        """
        Serve the next question and make it the pending one.

        Raises:
            MaxQuestionsReached: If the game already has its full count
            NoQuestionsAvailable: If the CSV store is needed but exhausted
        """
        if self.is_game_over:
            raise MaxQuestionsReached()

        served = await self.cache.next_question()
        # The last question may have been answered while this call waited on a refill
        if self.is_game_over:
            raise MaxQuestionsReached()
        self.session.current_question = served.question

        if served.mode_changed:
            self.logger.warning(f"Question source changed: {served.notice}")
        self.logger.debug(
            f"Served question {self.session.questions_answered + 1} from {served.mode.value}"
        )
        return served

    def submit_answer(self, answer: str) -> AnswerResult:
        """
        Grade an answer against the pending question.

        Grading ignores case and surrounding whitespace. The question
        counter always advances; the score only on a correct answer.

        Raises:
            NoActiveQuestion: If no question is pending
        """
        question = self.session.current_question
        if question is None:
            raise NoActiveQuestion()

        correct = (answer or "").strip().lower() == question.correct_answer.strip().lower()
        if correct:
            self.session.score += 1
        self.session.questions_answered += 1
        self.session.current_question = None

        result = AnswerResult(
            correct=correct,
            correct_answer=question.correct_answer,
            score=self.session.score,
            questions_answered=self.session.questions_answered,
            game_over=self.is_game_over
        )
        self.logger.info(
            f"Answer graded: correct={correct}, score={result.score}/{result.questions_answered}"
        )
        return result

    def get_score(self) -> ScoreSummary:
        return ScoreSummary(
            score=self.session.score,
            questions_answered=self.session.questions_answered,
            max_questions=self.settings.max_questions,
            game_over=self.is_game_over,
            mode=self.cache.mode
        )

    async def reset(self) -> ScoreSummary:
        """
        Start a fresh game: zero the score, reload the CSV store and refill
        the API buffer. Pending cooldown or backoff timers are cancelled.
        """
        self.session = GameSession()
        self.cache.store.load()
        if not await self.cache.reset():
            self.logger.warning("Reset could not refill from the API, serving from CSV")
        self.logger.info("Game has been reset.")
        return self.get_score()

    async def set_mode(self, mode: Union[str, Mode]) -> ModeChange:
        """
        Switch between API and CSV questions.

        Raises:
            ValueError: If mode is not API or CSV
            RateLimited: If API was requested and the provider is still limiting
            ProviderError: If API was requested and the provider failed otherwise
        """
        new_mode = parse_mode(mode)
        self.session.current_question = None
        change = await self.cache.set_mode(new_mode)
        self.logger.info(change.message)
        return change

    def get_status_summary(self) -> str:
        """One-line description of the game and question source."""
        snapshot = self.cache.snapshot()
        status = "Game over" if self.is_game_over else "In progress"
        return (
            f"{status} | Score: {self.session.score}/{self.session.questions_answered} "
            f"of {self.settings.max_questions} | Mode: {snapshot['mode']} ({snapshot['state']}) | "
            f"Buffered: {snapshot['buffered']} | CSV left: {snapshot['csv_remaining']}"
        )

    async def close(self) -> None:
        """Cancel timers and release the HTTP session."""
        await self.cache.shutdown()
        await self.cache.fetcher.close()

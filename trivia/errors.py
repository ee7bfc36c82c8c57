"""
Exception hierarchy for the Trivia Bot.
"""


class TriviaError(Exception):
    """Base exception for trivia errors."""

    default_message = "A trivia error occurred."

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        return str(self)


class SupplyError(TriviaError):
    """Base exception for question source failures."""
    pass


class RateLimited(SupplyError):
    """Raised when the remote provider answers with HTTP 429."""
    default_message = "Trivia API rate limit exceeded."


class ProviderError(SupplyError):
    """Raised for any other remote provider failure or malformed payload."""
    default_message = "Trivia API request failed."


class DatasetUnavailable(SupplyError):
    """Raised when the local question dataset is missing or unreadable."""
    default_message = "Local question dataset is unavailable."


class GameError(TriviaError):
    """Base exception for operations rejected by the game session."""
    pass


class MaxQuestionsReached(GameError):
    """Raised when a question is requested after the last one was answered."""
    default_message = "Maximum number of questions reached. Please reset the game."


class NoQuestionsAvailable(GameError):
    """Raised when the local dataset has been used up."""
    default_message = "No more CSV questions available. Please reset the game."


class NoActiveQuestion(GameError):
    """Raised when an answer arrives with no question pending."""
    default_message = "No active question. Please request a new question."

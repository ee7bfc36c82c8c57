"""
Remote question fetcher for the Open Trivia Database.
"""
import asyncio
import html
import logging
import random
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

import aiohttp

from .countries import CountryRegistry
from .errors import ProviderError, RateLimited
from .models import Mode, Question, TriviaSettings

logger = logging.getLogger(__name__)

# Open Trivia DB response codes
RESPONSE_SUCCESS = 0
RESPONSE_NO_RESULTS = 1
RESPONSE_RATE_LIMIT = 5


def decode_text(value: str) -> str:
    """Undo RFC 3986 percent-encoding, then HTML entities."""
    return html.unescape(unquote(value))


class RemoteFetcher:
    """Fetches geography questions and keeps only those that mention a country."""

    def __init__(
        self,
        settings: Optional[TriviaSettings] = None,
        registry: Optional[CountryRegistry] = None,
        session: Optional[aiohttp.ClientSession] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the fetcher.

        Args:
            settings: Provider URL, category, question type and timeout
            registry: Country registry used for the relevance filter
            session: Optional shared HTTP session; created lazily when omitted
            rng: Random generator used for answer shuffles
        """
        self.settings = settings or TriviaSettings()
        self.registry = registry or CountryRegistry()
        self._session = session
        self._owns_session = session is None
        self._rng = rng or random.Random()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this fetcher created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch_batch(self, count: int) -> List[Question]:
        """
        Request count questions and return the country-relevant ones.

        Args:
            count: Number of questions to request

        Returns:
            Normalized questions, possibly fewer than requested

        Raises:
            RateLimited: If the provider reports a rate limit
            ProviderError: On any other failure or a malformed payload
        """
        payload = await self._request(count)
        return self.parse_payload(payload)

    async def _request(self, count: int) -> Dict[str, Any]:
        params = {
            'amount': count,
            'category': self.settings.category,
            'type': self.settings.question_type,
            'encode': 'url3986'
        }
        timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds)
        session = await self._get_session()

        try:
            async with session.get(self.settings.provider_url, params=params, timeout=timeout) as response:
                if response.status == 429:
                    raise RateLimited("Trivia API rate limit exceeded (HTTP 429).")
                if response.status != 200:
                    raise ProviderError(f"Trivia API returned HTTP {response.status}.")
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise ProviderError(f"Trivia API returned invalid JSON: {e}") from e
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"Trivia API did not respond within {self.settings.request_timeout_seconds}s."
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderError(f"Trivia API request failed: {e}") from e

    def parse_payload(self, payload: Any) -> List[Question]:
        """
        Turn a provider payload into filtered, shuffled questions.

        Raises:
            RateLimited: If the payload carries the rate-limit response code
            ProviderError: If the payload is malformed or reports an error
        """
        if not isinstance(payload, dict):
            raise ProviderError("Trivia API payload is not an object.")

        response_code = payload.get('response_code')
        if response_code == RESPONSE_RATE_LIMIT:
            raise RateLimited("Trivia API rate limit exceeded (response code 5).")
        if response_code == RESPONSE_NO_RESULTS:
            logger.warning("Trivia API had no results for the requested parameters")
            return []
        if response_code != RESPONSE_SUCCESS:
            raise ProviderError(f"API returned a non-zero response_code: {response_code}")

        results = payload.get('results')
        if not isinstance(results, list):
            raise ProviderError("Trivia API payload has no results list.")

        questions = []
        for record in results:
            question = self._parse_record(record)
            if question is not None:
                questions.append(question)

        logger.info(
            f"Fetched {len(results)} API questions, kept {len(questions)}",
            extra={
                'event_type': 'fetch_parsed',
                'received': len(results),
                'kept': len(questions)
            }
        )
        return questions

    def _parse_record(self, record: Any) -> Optional[Question]:
        try:
            if record.get('type', 'multiple') != 'multiple':
                logger.warning(f"Skipped non-multiple-choice question of type {record.get('type')}")
                return None
            text = decode_text(record['question'])
            correct_answer = decode_text(record['correct_answer'])
            distractors = [decode_text(answer) for answer in record['incorrect_answers']]
        except (AttributeError, KeyError, TypeError) as e:
            logger.warning(f"Skipped malformed question record: {e}")
            return None

        # Relevance is judged on the question text only
        if self.registry.extract_country(text) is None:
            logger.warning(f"Skipped question because it does not mention any country: {text}")
            return None

        try:
            return Question.build(text, correct_answer, distractors, source=Mode.API, rng=self._rng)
        except ValueError as e:
            logger.warning(f"Skipped invalid question '{text}': {e}")
            return None

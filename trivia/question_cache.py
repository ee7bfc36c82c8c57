"""
Question cache and mode controller for the Trivia Bot.

Owns the prefetch buffer of API questions and decides, per request, whether a
question comes from the buffer or from the local CSV store. Remote failures
are absorbed here: rate limits are retried with exponential backoff, any other
provider error falls back immediately, and a cooldown timer later tries the
API again.
"""
import asyncio
import logging
import time
from typing import List, Optional

from .errors import NoQuestionsAvailable, ProviderError, RateLimited, SupplyError
from .models import CacheState, Mode, ModeChange, Question, ServedQuestion, SupplyState, TriviaSettings
from .question_store import LocalQuestionStore
from .remote_fetcher import RemoteFetcher
from .scheduler import Scheduler

COOLDOWN_TIMER = "api_cooldown"
BACKOFF_TIMER = "api_backoff"


class QuestionCacheController:
    """
    State machine over API_ACTIVE, API_COOLDOWN and CSV_MANUAL.

    All refills go through one shared task: a caller that needs a refill
    while a fetch is outstanding awaits that fetch instead of starting a
    second one. Manual mode switches and resets bump a generation counter so
    that a fetch started before them cannot write into the new state.
    """

    def __init__(
        self,
        fetcher: RemoteFetcher,
        store: LocalQuestionStore,
        settings: Optional[TriviaSettings] = None,
        scheduler: Optional[Scheduler] = None
    ):
        self.logger = logging.getLogger(__name__)
        self.fetcher = fetcher
        self.store = store
        self.settings = settings or TriviaSettings()
        self.scheduler = scheduler or Scheduler()

        self._cache = CacheState()
        self._state = SupplyState.API_ACTIVE
        self._refill_task: Optional[asyncio.Task] = None
        self._generation = 0
        self._last_error: Optional[SupplyError] = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SupplyState:
        return self._state

    @property
    def mode(self) -> Mode:
        """Mode label shown to players."""
        return self._cache.mode

    @property
    def buffered(self) -> int:
        return len(self._cache.buffer)

    @property
    def in_flight(self) -> bool:
        return self._cache.in_flight_fetch

    @property
    def consecutive_failures(self) -> int:
        return self._cache.consecutive_failures

    @property
    def cooldown_until(self) -> Optional[float]:
        return self._cache.cooldown_until

    @property
    def last_error(self) -> Optional[SupplyError]:
        return self._last_error

    def snapshot(self) -> dict:
        """Current cache state as a plain dictionary."""
        return {
            'state': self._state.value,
            'mode': self._cache.mode.value,
            'buffered': len(self._cache.buffer),
            'in_flight_fetch': self._cache.in_flight_fetch,
            'consecutive_failures': self._cache.consecutive_failures,
            'cooldown_until': self._cache.cooldown_until,
            'csv_remaining': self.store.remaining()
        }

    # ------------------------------------------------------------------
    # Serving
    # ------------------------------------------------------------------

    async def next_question(self) -> ServedQuestion:
        """
        Serve the next question from the active source.

        In API_ACTIVE the buffer head is served, refilling first only when
        the buffer is empty. If the refill fails the controller falls back
        and the same call is answered from the CSV store, with a notice.

        Raises:
            NoQuestionsAvailable: If the CSV store is needed and exhausted
        """
        mode_before = self._cache.mode

        while self._state is SupplyState.API_ACTIVE:
            if self._cache.buffer:
                question = self._cache.buffer.popleft()
                if not self._cache.buffer:
                    # Refill after serving so this call never waits on it
                    self._ensure_refill()
                return ServedQuestion(question=question, mode=Mode.API)
            generation = self._generation
            if not await self.refill() and generation == self._generation:
                break

        question = self.store.draw()
        if question is None:
            raise NoQuestionsAvailable()

        notice = None
        # A manual switch to CSV is not an API failure and carries no notice
        if self._cache.mode is not mode_before and self._state is SupplyState.API_COOLDOWN:
            notice = self._fallback_notice()
        return ServedQuestion(question=question, mode=Mode.CSV, notice=notice)

    def _fallback_notice(self) -> str:
        if self._last_error is not None:
            return f"{self._last_error} Switched to CSV mode."
        return "Trivia API unavailable. Switched to CSV mode."

    # ------------------------------------------------------------------
    # Refilling
    # ------------------------------------------------------------------

    async def refill(self) -> bool:
        """
        Top up the buffer from the remote provider.

        Returns:
            True if at least one question was added, False if the fetch
            failed (the controller is then in cooldown) or was superseded
        """
        task = self._ensure_refill()
        # Shield so a cancelled caller does not cancel the shared fetch
        return await asyncio.shield(task)

    def _ensure_refill(self, max_attempts: Optional[int] = None, recovery: bool = False) -> asyncio.Task:
        if self._refill_task is not None and not self._refill_task.done():
            self.logger.debug(
                "Refill already in flight, joining it",
                extra={'event_type': 'refill_joined', 'generation': self._generation}
            )
            return self._refill_task

        attempts = max_attempts or self.settings.max_fetch_attempts
        task = asyncio.create_task(self._run_refill(self._generation, attempts, recovery))
        task.add_done_callback(self._on_refill_done)
        self._refill_task = task
        return task

    def _on_refill_done(self, task: asyncio.Task) -> None:
        if task is self._refill_task:
            self._refill_task = None
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(f"Unexpected error during refill: {error}", exc_info=error)

    async def _run_refill(self, generation: int, max_attempts: int, recovery: bool) -> bool:
        self._cache.in_flight_fetch = True
        try:
            return await self._fetch_with_retries(generation, max_attempts, recovery)
        except Exception as e:
            # Anything unexpected is treated as a provider failure
            if generation == self._generation:
                self.logger.error(f"Error prefetching API questions: {e}", exc_info=True)
                self._last_error = ProviderError(f"Trivia API request failed: {e}")
                self._enter_cooldown(str(e), keep_label=recovery)
            return False
        finally:
            if generation == self._generation:
                self._cache.in_flight_fetch = False

    async def _fetch_with_retries(self, generation: int, max_attempts: int, recovery: bool) -> bool:
        for attempt in range(1, max_attempts + 1):
            try:
                questions = await self.fetcher.fetch_batch(self.settings.cache_size)
            except RateLimited as e:
                if generation != self._generation:
                    return False
                self._cache.consecutive_failures += 1
                self._last_error = e
                self.logger.error(
                    f"Rate limit exceeded while prefetching API questions. "
                    f"Attempt {attempt} of {max_attempts}.",
                    extra={
                        'event_type': 'fetch_rate_limited',
                        'attempt': attempt,
                        'max_attempts': max_attempts
                    }
                )
                if attempt < max_attempts:
                    delay = self.settings.backoff_base_seconds * (2 ** (attempt - 1))
                    self.logger.info(f"Retrying in {delay:g} seconds...")
                    if not await self.scheduler.wait(BACKOFF_TIMER, delay):
                        self.logger.info("Backoff cancelled, abandoning refill")
                        return False
                    if generation != self._generation:
                        return False
                    continue
                self.logger.error("Max prefetch attempts reached. Switching to CSV mode.")
                self._enter_cooldown("rate limit persisted", keep_label=recovery)
                return False
            except ProviderError as e:
                if generation != self._generation:
                    return False
                self._cache.consecutive_failures += 1
                self._last_error = e
                self.logger.error(f"Error prefetching API questions: {e}")
                self._enter_cooldown("provider error", keep_label=recovery)
                return False

            if generation != self._generation:
                self.logger.info("Discarding fetch result from before a reset or mode switch")
                return False
            return self._accept(questions, recovery)

        return False

    def _accept(self, questions: List[Question], recovery: bool = False) -> bool:
        self._cache.consecutive_failures = 0
        if not questions:
            # Nothing usable survived filtering; the API cannot serve right now
            self._last_error = ProviderError("Trivia API returned no usable questions.")
            self.logger.warning("Prefetch returned no country questions")
            self._enter_cooldown("no usable questions", keep_label=recovery)
            return False

        space = self.settings.cache_size - len(self._cache.buffer)
        accepted = questions[:max(space, 0)]
        self._cache.buffer.extend(accepted)
        if len(questions) > len(accepted):
            self.logger.debug(f"Discarded {len(questions) - len(accepted)} overflow questions")

        self._last_error = None
        self._state = SupplyState.API_ACTIVE
        self._cache.mode = Mode.API
        self.logger.info(
            f"Prefetched {len(self._cache.buffer)} API questions.",
            extra={'event_type': 'refill_succeeded', 'buffered': len(self._cache.buffer)}
        )
        return bool(accepted) or bool(self._cache.buffer)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, to_state: SupplyState, reason: str) -> None:
        from_state = self._state
        self._state = to_state
        self.logger.info(
            f"Question supply: {from_state.value} -> {to_state.value} ({reason})",
            extra={
                'event_type': 'supply_state_transition',
                'from_state': from_state.value,
                'to_state': to_state.value,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    def _enter_cooldown(self, reason: str, keep_label: bool = False) -> None:
        """Fall back to CSV, drop buffered API questions and (re)arm recovery."""
        self._cache.buffer.clear()
        if not keep_label:
            self._cache.mode = Mode.CSV
        self._transition(SupplyState.API_COOLDOWN, reason)
        self.logger.warning("Switched to CSV mode due to API failure.")

        self.scheduler.schedule(COOLDOWN_TIMER, self.settings.cooldown_seconds, self._on_cooldown_elapsed)
        self._cache.cooldown_until = time.time() + self.settings.cooldown_seconds

    def _on_cooldown_elapsed(self) -> None:
        self.logger.info("Attempting to switch back to API mode.")
        self._cache.cooldown_until = None
        self._cache.consecutive_failures = 0
        self._cache.mode = Mode.API
        self._transition(SupplyState.API_ACTIVE, "cooldown elapsed")
        # One attempt only; a failure keeps the API label and re-arms the cooldown
        self._ensure_refill(max_attempts=1, recovery=True)

    def _invalidate(self) -> None:
        """Cut off any outstanding fetch, backoff or cooldown."""
        self._generation += 1
        self._refill_task = None
        self._cache.in_flight_fetch = False
        self.scheduler.cancel(BACKOFF_TIMER, reason="superseded")
        self.scheduler.cancel(COOLDOWN_TIMER, reason="superseded")
        self._cache.cooldown_until = None
        self._cache.buffer.clear()

    async def set_mode(self, mode: Mode) -> ModeChange:
        """
        Switch the question source by hand.

        Raises:
            RateLimited: If the API was requested but could not be reached
            ProviderError: If the API was requested and failed otherwise
        """
        if mode is Mode.CSV:
            self._invalidate()
            self._cache.mode = Mode.CSV
            self._transition(SupplyState.CSV_MANUAL, "user selected CSV")
            return ModeChange(mode=Mode.CSV, state=self._state, message="Mode has been switched to CSV.")

        if self._state is SupplyState.API_ACTIVE:
            return ModeChange(
                mode=Mode.API,
                state=self._state,
                message="Mode is already API.",
                buffered=len(self._cache.buffer)
            )

        self._invalidate()
        self._cache.consecutive_failures = 0
        self._cache.mode = Mode.API
        self._transition(SupplyState.API_ACTIVE, "user selected API")

        if await self.refill():
            return ModeChange(
                mode=Mode.API,
                state=self._state,
                message="Mode has been switched to API.",
                buffered=len(self._cache.buffer)
            )

        error = self._last_error or RateLimited()
        raise type(error)(f"{error} Switched back to CSV mode.")

    async def reset(self) -> bool:
        """
        Drop all cached state and refill from the API.

        Returns:
            True if the refill succeeded
        """
        self._invalidate()
        self._cache.consecutive_failures = 0
        self._last_error = None
        self._cache.mode = Mode.API
        self._transition(SupplyState.API_ACTIVE, "reset")
        return await self.refill()

    async def shutdown(self) -> None:
        """Cancel timers and any outstanding refill."""
        task = self._refill_task
        self._invalidate()
        self.scheduler.cancel_all(reason="shutdown")
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

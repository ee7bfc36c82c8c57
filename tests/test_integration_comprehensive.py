"""
Integration tests for the Geography Trivia Bot.
Drives complete games through the real fetcher, store and cache with only the
HTTP session replaced.
"""
import logging
import random
import shutil
import tempfile
import unittest

from trivia.config_manager import ConfigManager
from trivia.countries import CountryRegistry
from trivia.errors import NoQuestionsAvailable, RateLimited
from trivia.game_controller import GameController
from trivia.models import Mode, SupplyState
from trivia.question_cache import QuestionCacheController
from trivia.question_store import LocalQuestionStore
from trivia.remote_fetcher import RemoteFetcher
from trivia.scheduler import Scheduler
from tests.test_fixtures import AsyncTestHelpers, FakeResponse, FakeSession, TestFixtures

CAPITALS = [
    ("Kenya", "Nairobi", ["Kampala", "Dodoma", "Kigali"]),
    ("Peru", "Lima", ["Quito", "Bogota", "La Paz"]),
    ("Japan", "Tokyo", ["Osaka", "Kyoto", "Nagoya"]),
    ("Egypt", "Cairo", ["Giza", "Luxor", "Aswan"]),
    ("Canada", "Ottawa", ["Toronto", "Montreal", "Vancouver"]),
    ("Chile", "Santiago", ["Valparaiso", "Lima", "Mendoza"]),
    ("Norway", "Oslo", ["Bergen", "Stockholm", "Helsinki"]),
    ("Ghana", "Accra", ["Kumasi", "Lagos", "Lome"]),
    ("Poland", "Warsaw", ["Krakow", "Prague", "Gdansk"]),
    ("Vietnam", "Hanoi", ["Saigon", "Hue", "Da Nang"]),
]


def capital_payload():
    records = [
        TestFixtures.create_api_record(f"What is the capital of {country}?", capital, others)
        for country, capital, others in CAPITALS
    ]
    records.append(TestFixtures.create_api_record(
        "What is the tallest mountain on Earth?", "Everest", ["K2", "Lhotse", "Makalu"]
    ))
    return TestFixtures.create_api_payload(records)


class ScriptedSession(FakeSession):
    """Session answering each GET with the next scripted response."""

    def __init__(self, responses):
        super().__init__()
        self.responses = list(responses)

    def get(self, url, params=None, timeout=None):
        self.requests.append({'url': url, 'params': params, 'timeout': timeout})
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class TestCompleteGameFlow(unittest.IsolatedAsyncioTestCase):
    """Complete games from the first question to game over."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)
        logging.disable(logging.NOTSET)

    async def asyncTearDown(self):
        await self.game.close()

    def build_game(self, responses, csv_rows: int = 20, **overrides) -> GameController:
        config_manager = ConfigManager()
        dataset = TestFixtures.write_dataset(self.temp_dir, TestFixtures.create_dataset_rows(csv_rows))
        config_manager.apply_config({'dataset_path': str(dataset), 'backoff_base_seconds': 0.001})
        settings = config_manager.get_trivia_settings()
        for key, value in overrides.items():
            setattr(settings, key, value)

        registry = CountryRegistry()
        self.session = ScriptedSession(responses)
        store = LocalQuestionStore(settings.dataset_path, registry, random.Random(11))
        fetcher = RemoteFetcher(settings, registry, session=self.session, rng=random.Random(11))
        cache = QuestionCacheController(fetcher, store, settings, Scheduler())
        self.game = GameController(cache, settings)
        return self.game

    async def test_full_game_from_api(self):
        game = self.build_game([FakeResponse(200, capital_payload())])
        await game.start()
        self.assertEqual(game.cache.buffered, 10)

        countries = {country for country, _, _ in CAPITALS}
        for _ in range(15):
            served = await game.get_question()
            self.assertEqual(served.mode, Mode.API)
            self.assertTrue(any(country in served.question.text for country in countries))
            game.submit_answer(served.question.correct_answer)

        self.assertEqual(game.get_score().score, 15)
        self.assertTrue(game.get_score().game_over)
        self.assertEqual(len(self.session.requests), 2)

    async def test_rate_limited_game_falls_back_and_recovers_by_hand(self):
        game = self.build_game([FakeResponse(429), FakeResponse(429), FakeResponse(429),
                                FakeResponse(200, capital_payload())])
        await game.start()
        self.assertEqual(game.cache.state, SupplyState.API_COOLDOWN)

        served = await game.get_question()
        self.assertEqual(served.mode, Mode.CSV)
        self.assertTrue(game.submit_answer(served.question.correct_answer).correct)

        change = await game.set_mode("API")
        self.assertEqual(change.buffered, 10)
        self.assertEqual((await game.get_question()).mode, Mode.API)
        self.assertEqual(len(self.session.requests), 4)

    async def test_first_request_reports_fallback(self):
        game = self.build_game([FakeResponse(503)])
        game.cache.store.load()

        served = await game.get_question()

        self.assertEqual(served.mode, Mode.CSV)
        self.assertIn("HTTP 503", served.notice)
        self.assertEqual(len(self.session.requests), 1)

    async def test_cooldown_recovery_returns_to_api(self):
        game = self.build_game(
            [FakeResponse(500), FakeResponse(200, capital_payload())],
            cooldown_seconds=0.02
        )
        await game.start()
        self.assertEqual(game.cache.mode, Mode.CSV)

        await AsyncTestHelpers.wait_until(lambda: game.cache.buffered == 10)

        self.assertEqual(game.cache.mode, Mode.API)
        self.assertEqual((await game.get_question()).mode, Mode.API)

    async def test_provider_rate_limit_code_is_retried(self):
        game = self.build_game([
            FakeResponse(200, {"response_code": 5, "results": []}),
            FakeResponse(200, capital_payload())
        ])

        self.assertTrue(await game.cache.refill())
        self.assertEqual(len(self.session.requests), 2)

    async def test_csv_game_exhausts_dataset(self):
        game = self.build_game([FakeResponse(200, capital_payload())], csv_rows=3)
        await game.start()
        await game.set_mode("CSV")

        for _ in range(3):
            served = await game.get_question()
            game.submit_answer(served.question.correct_answer)

        with self.assertRaises(NoQuestionsAvailable):
            await game.get_question()

        await game.reset()
        self.assertEqual(game.cache.store.remaining(), 3)
        self.assertEqual(game.cache.state, SupplyState.API_ACTIVE)

    async def test_manual_api_switch_during_rate_limit(self):
        game = self.build_game([FakeResponse(429)])
        await game.set_mode("CSV")

        with self.assertRaises(RateLimited):
            await game.set_mode("api")

        self.assertEqual(game.cache.mode, Mode.CSV)
        self.assertEqual(len(self.session.requests), 3)


if __name__ == '__main__':
    unittest.main()

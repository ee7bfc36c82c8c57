"""
Unit tests for Discord bot integration with a mocked Discord API.
"""
import logging
import shutil
import tempfile
import unittest
from unittest.mock import AsyncMock, Mock, patch

import discord

from trivia.bot import TriviaBot, run_bot
from trivia.config_manager import ConfigManager
from trivia.errors import ProviderError, RateLimited
from trivia.game_controller import GameController
from trivia.models import Mode
from trivia.question_cache import QuestionCacheController
from trivia.scheduler import Scheduler
from tests.test_fixtures import FakeFetcher, MockDiscordObjects, TestFixtures


def _sent_embed(mock_send) -> discord.Embed:
    return mock_send.call_args.kwargs['embed']


class TestDiscordBotIntegration(unittest.IsolatedAsyncioTestCase):
    """Command handlers driven against a real game with a scripted fetcher."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)
        logging.disable(logging.NOTSET)

    async def asyncSetUp(self):
        self.bot = TriviaBot({'bot': {'command_prefix': '?'}})
        self.bot.config_manager = ConfigManager()

    async def asyncTearDown(self):
        if self.bot.game is not None:
            await self.bot.game.close()

    def install_game(self, outcomes, csv_rows: int = 5) -> GameController:
        self.fetcher = FakeFetcher(outcomes)
        settings = TestFixtures.create_fast_settings()
        store = TestFixtures.create_store(self.temp_dir, count=csv_rows)
        cache = QuestionCacheController(self.fetcher, store, settings, Scheduler())
        self.bot.game = GameController(cache, settings)
        return self.bot.game

    async def test_help_command(self):
        self.install_game([TestFixtures.create_batch(3)])
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_help(interaction)

        embed = _sent_embed(interaction.response.send_message)
        self.assertIn("Geography Trivia", embed.title)
        self.assertIn("/mode", embed.fields[1].value)

    async def test_question_command_lists_four_answers(self):
        self.install_game([TestFixtures.create_batch(3)])
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_question(interaction)

        interaction.response.defer.assert_called_once()
        embed = _sent_embed(interaction.followup.send)
        self.assertEqual(embed.title, "❓ Question 1 of 15")
        self.assertEqual(len(embed.fields[0].value.splitlines()), 4)
        self.assertIn("Source: API", embed.footer.text)

    async def test_question_command_reports_fallback(self):
        self.install_game([ProviderError("HTTP 500")])
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_question(interaction)

        embed = _sent_embed(interaction.followup.send)
        self.assertEqual(embed.fields[-1].name, "⚠️ Mode Changed")
        self.assertIn("Switched to CSV mode", embed.fields[-1].value)

    async def test_question_command_after_game_over(self):
        game = self.install_game([TestFixtures.create_batch(3)])
        game.session.questions_answered = 15
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_question(interaction)

        embed = _sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "❌ No Question")
        self.assertIn("Maximum number of questions reached", embed.description)

    async def test_answer_by_letter(self):
        game = self.install_game([TestFixtures.create_batch(3)])
        served = await game.get_question()
        letter = "ABCD"[served.question.answers.index("Spain")]
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_answer(interaction, letter.lower())

        embed = _sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "✅ Correct!")
        self.assertEqual(game.session.score, 1)

    async def test_answer_by_text_incorrect(self):
        game = self.install_game([TestFixtures.create_batch(3)])
        await game.get_question()
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_answer(interaction, "Atlantis")

        embed = _sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "❌ Incorrect")
        self.assertIn("Spain", embed.description)

    async def test_answer_without_question(self):
        self.install_game([TestFixtures.create_batch(3)])
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_answer(interaction, "Spain")

        embed = _sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "❌ No Active Question")

    async def test_last_answer_announces_game_over(self):
        game = self.install_game([TestFixtures.create_batch(3)])
        game.session.questions_answered = 14
        await game.get_question()
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_answer(interaction, "Spain")

        embed = _sent_embed(interaction.response.send_message)
        self.assertEqual(embed.fields[-1].name, "🏁 Game Over")

    async def test_score_command(self):
        self.install_game([TestFixtures.create_batch(3)])
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_score(interaction)

        embed = _sent_embed(interaction.response.send_message)
        self.assertIn("0", embed.description)
        self.assertEqual(embed.fields[1].value, "API")

    async def test_reset_command(self):
        game = self.install_game([TestFixtures.create_batch(3)])
        game.session.score = 4
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_reset(interaction)

        embed = _sent_embed(interaction.followup.send)
        self.assertEqual(embed.title, "🔄 Game has been reset.")
        self.assertEqual(game.session.score, 0)

    async def test_mode_command_switches_to_csv(self):
        game = self.install_game([TestFixtures.create_batch(3)])
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_mode(interaction, "CSV")

        embed = _sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "🔀 Mode Switched")
        self.assertEqual(game.cache.mode, Mode.CSV)

    async def test_mode_command_warns_when_api_unavailable(self):
        self.install_game([RateLimited()])
        await self.bot.game.set_mode("CSV")
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_mode(interaction, "API")

        embed = _sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "⚠️ API Unavailable")
        self.assertIn("Switched back to CSV mode", embed.description)

    async def test_mode_command_rejects_unknown_mode(self):
        self.install_game([TestFixtures.create_batch(3)])
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_mode(interaction, "XML")

        embed = _sent_embed(interaction.response.send_message)
        self.assertEqual(embed.title, "❌ Invalid Mode")

    async def test_status_command_is_ephemeral(self):
        self.install_game([TestFixtures.create_batch(3)])
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_status(interaction)

        call = interaction.response.send_message.call_args
        self.assertTrue(call.kwargs['ephemeral'])
        self.assertIn("Mode: API", call.kwargs['embed'].description)

    async def test_status_command_reports_local_dataset(self):
        game = self.install_game([ProviderError()])
        await game.get_question()
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_status(interaction)

        embed = _sent_embed(interaction.response.send_message)
        dataset_field = next(field for field in embed.fields if field.name == "Local Dataset")
        self.assertEqual(dataset_field.value, "4 of 5 questions left")

    async def test_status_command_reports_dataset_errors(self):
        game = self.install_game([TestFixtures.create_batch(3)])
        game.cache.store.dataset_path = game.cache.store.dataset_path.with_name("missing.csv")
        game.cache.store.load()
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.bot.handle_status(interaction)

        embed = _sent_embed(interaction.response.send_message)
        dataset_field = next(field for field in embed.fields if field.name == "Local Dataset")
        self.assertIn("0 of 0 questions left", dataset_field.value)
        self.assertIn("1 load errors", dataset_field.value)

    async def test_error_response_uses_followup_after_defer(self):
        self.install_game([TestFixtures.create_batch(3)])
        interaction = MockDiscordObjects.create_mock_interaction()
        interaction.response.is_done.return_value = True

        await self.bot.send_error_response(interaction, "Something failed")

        interaction.followup.send.assert_called_once()
        interaction.response.send_message.assert_not_called()

    async def test_error_response_survives_discord_error(self):
        self.install_game([TestFixtures.create_batch(3)])
        interaction = MockDiscordObjects.create_mock_interaction()
        interaction.response.send_message.side_effect = discord.HTTPException(Mock(status=500), "boom")

        await self.bot.send_error_response(interaction, "Something failed")

        interaction.response.send_message.assert_called_once()


class TestBotSetup(unittest.IsolatedAsyncioTestCase):
    """Test cases for bot start-up wiring."""

    def setUp(self):
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    async def test_setup_hook_applies_config_and_starts_game(self):
        bot = TriviaBot({'trivia': {'cache_size': 5, 'cooldown_seconds': 30}})
        game = Mock()
        game.start = AsyncMock()

        with patch('trivia.bot.GameController.from_settings', return_value=game) as from_settings, \
                patch.object(TriviaBot, 'setup_commands', new=AsyncMock()):
            await bot.setup_hook()

        settings = from_settings.call_args.args[0]
        self.assertEqual(settings.cache_size, 5)
        self.assertEqual(settings.cooldown_seconds, 30)
        game.start.assert_awaited_once()
        self.assertIs(bot.game, game)

    async def test_command_prefix_from_config(self):
        bot = TriviaBot({'bot': {'command_prefix': '?'}})

        self.assertEqual(bot.command_prefix, '?')

    async def test_run_bot_without_token_returns(self):
        with patch.dict('os.environ', {}, clear=True), \
                patch('trivia.bot.TriviaBot') as bot_class:
            await run_bot(None)

        bot_class.assert_not_called()


if __name__ == '__main__':
    unittest.main()

import discord
from discord import app_commands
from discord.ext import commands
import logging
import os
from typing import Optional

from .config_manager import ConfigManager
from .errors import SupplyError, TriviaError
from .game_controller import GameController
from .models import Mode, ServedQuestion

logger = logging.getLogger(__name__)

ANSWER_LETTERS = ("A", "B", "C", "D")


class TriviaBot(commands.Bot):
    """Discord bot that runs a geography trivia game"""

    def __init__(self, config=None):
        # Slash commands only need the guilds intent
        intents = discord.Intents.none()
        intents.guilds = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None  # We'll implement our own help command
        )

        self.app_config = config or {}

        # Initialize core components
        self.config_manager: Optional[ConfigManager] = None
        self.game: Optional[GameController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            if self.app_config:
                self.apply_configuration()

            self.game = GameController.from_settings(self.config_manager.get_trivia_settings())
            await self.game.start()

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def apply_configuration(self):
        """Apply settings from configuration file to the config manager."""
        errors = self.config_manager.apply_config(self.app_config.get('trivia', {}))
        for error in errors:
            logger.warning(f"Invalid trivia setting ignored: {error}")
        logger.info("Configuration applied successfully")

    async def setup_commands(self):
        """Register all slash commands"""
        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="question", description="Get the next trivia question")
        async def question_command(interaction: discord.Interaction):
            await self.handle_question(interaction)

        @self.tree.command(name="answer", description="Answer the current question (text or A-D)")
        async def answer_command(interaction: discord.Interaction, answer: str):
            await self.handle_answer(interaction, answer)

        @self.tree.command(name="score", description="Show the current score")
        async def score_command(interaction: discord.Interaction):
            await self.handle_score(interaction)

        @self.tree.command(name="reset", description="Reset the game")
        async def reset_command(interaction: discord.Interaction):
            await self.handle_reset(interaction)

        @self.tree.command(name="mode", description="Switch the question source")
        @app_commands.choices(mode=[
            app_commands.Choice(name="API", value="API"),
            app_commands.Choice(name="CSV", value="CSV"),
        ])
        async def mode_command(interaction: discord.Interaction, mode: app_commands.Choice[str]):
            await self.handle_mode(interaction, mode.value)

        @self.tree.command(name="status", description="Show game and question source status")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        if self.game is not None:
            await self.game.close()
        await super().close()

    # Command handlers
    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        help_embed = discord.Embed(
            title="🌍 Geography Trivia Commands",
            description="Answer questions about the countries of the world",
            color=0x00ff00
        )
        help_embed.add_field(
            name="🎮 Game Commands",
            value=(
                "`/question` - Get the next question\n"
                "`/answer <text>` - Answer with the text or its letter (A-D)\n"
                "`/score` - Show the current score\n"
                "`/reset` - Start a new game"
            ),
            inline=False
        )
        help_embed.add_field(
            name="⚙️ Source Commands",
            value=(
                "`/mode <API|CSV>` - Use the online trivia API or the local question set\n"
                "`/status` - Show the game and question source status"
            ),
            inline=False
        )
        help_embed.add_field(
            name="⚙️ Current Settings",
            value=f"```\n{self.config_manager.get_settings_summary()}\n```",
            inline=False
        )
        await interaction.response.send_message(embed=help_embed)

    async def handle_question(self, interaction: discord.Interaction):
        """Handle /question command"""
        try:
            await interaction.response.defer()
            served = await self.game.get_question()
            await interaction.followup.send(embed=self.build_question_embed(served))
        except TriviaError as e:
            await self.send_error_response(interaction, e.user_message, "❌ No Question")
        except Exception as e:
            logger.error(f"Error in question command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Internal error while fetching a question.")

    def build_question_embed(self, served: ServedQuestion) -> discord.Embed:
        question = served.question
        number = self.game.session.questions_answered + 1
        embed = discord.Embed(
            title=f"❓ Question {number} of {self.game.settings.max_questions}",
            description=f"**{question.text}**",
            color=0x6699ff
        )
        embed.add_field(
            name="Answers",
            value="\n".join(
                f"**{letter}.** {answer}" for letter, answer in zip(ANSWER_LETTERS, question.answers)
            ),
            inline=False
        )
        if served.notice:
            embed.add_field(name="⚠️ Mode Changed", value=served.notice, inline=False)
        embed.set_footer(text=f"Source: {served.mode.value} | Reply with /answer")
        return embed

    def resolve_answer(self, answer: str) -> str:
        """Map a bare letter A-D onto the matching answer of the pending question."""
        question = self.game.session.current_question
        letter = (answer or "").strip().upper()
        if question is not None and letter in ANSWER_LETTERS[:len(question.answers)]:
            return question.answers[ANSWER_LETTERS.index(letter)]
        return answer

    async def handle_answer(self, interaction: discord.Interaction, answer: str):
        """Handle /answer command"""
        try:
            result = self.game.submit_answer(self.resolve_answer(answer))
        except TriviaError as e:
            await self.send_error_response(interaction, e.user_message, "❌ No Active Question")
            return

        if result.correct:
            embed = discord.Embed(title="✅ Correct!", color=0x00ff00)
        else:
            embed = discord.Embed(
                title="❌ Incorrect",
                description=f"The correct answer was **{result.correct_answer}**",
                color=0xff0000
            )
        embed.add_field(
            name="Score",
            value=f"{result.score} / {result.questions_answered}",
            inline=True
        )
        if result.game_over:
            embed.add_field(
                name="🏁 Game Over",
                value=f"Final score: **{result.score}**. Use `/reset` to play again.",
                inline=False
            )
        await interaction.response.send_message(embed=embed)

    async def handle_score(self, interaction: discord.Interaction):
        """Handle /score command"""
        summary = self.game.get_score()
        embed = discord.Embed(
            title="🏆 Score",
            description=f"**{summary.score}** correct out of {summary.questions_answered}",
            color=0x6699ff
        )
        embed.add_field(
            name="Progress",
            value=f"{summary.questions_answered} / {summary.max_questions}",
            inline=True
        )
        embed.add_field(name="Mode", value=summary.mode.value, inline=True)
        if summary.game_over:
            embed.set_footer(text="Game over - use /reset to play again")
        await interaction.response.send_message(embed=embed)

    async def handle_reset(self, interaction: discord.Interaction):
        """Handle /reset command"""
        try:
            await interaction.response.defer()
            summary = await self.game.reset()
            await interaction.followup.send(
                embed=discord.Embed(
                    title="🔄 Game has been reset.",
                    description=f"Questions come from **{summary.mode.value}** mode.",
                    color=0x00ff00
                )
            )
        except Exception as e:
            logger.error(f"Error in reset command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to reset the game.")

    async def handle_mode(self, interaction: discord.Interaction, mode: str):
        """Handle /mode command"""
        try:
            await interaction.response.defer()
            change = await self.game.set_mode(mode)
            await self.send_info_response(interaction, change.message, "🔀 Mode Switched")
        except ValueError as e:
            await self.send_error_response(interaction, str(e), "❌ Invalid Mode")
        except SupplyError as e:
            await self.send_warning_response(interaction, e.user_message, "⚠️ API Unavailable")
        except Exception as e:
            logger.error(f"Error in mode command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to switch mode.")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        color = 0x00ff00 if self.game.cache.mode is Mode.API else 0xffaa00
        embed = discord.Embed(
            title="📊 Trivia Status",
            description=self.game.get_status_summary(),
            color=color
        )
        dataset = self.game.cache.store.get_loading_summary()
        dataset_value = f"{dataset['remaining']} of {dataset['loaded']} questions left"
        if dataset['has_errors']:
            dataset_value += f"\n⚠️ {dataset['error_count']} load errors, first: {dataset['errors'][0]}"
        embed.add_field(name="Local Dataset", value=dataset_value, inline=False)

        health_check = self.config_manager.get_configuration_health_check()
        for warning in health_check['warnings'] + health_check['errors']:
            embed.add_field(name="Configuration", value=warning, inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def _send(self, interaction: discord.Interaction, embed: discord.Embed, ephemeral: bool):
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=ephemeral)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=ephemeral)

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send error response to user with fallback handling"""
        try:
            embed = discord.Embed(title=title, description=message, color=0xff0000)
            await self._send(interaction, embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send informational response to user"""
        try:
            embed = discord.Embed(title=title, description=message, color=0x6699ff)
            await self._send(interaction, embed, ephemeral=False)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send warning response to user"""
        try:
            embed = discord.Embed(title=title, description=message, color=0xffaa00)
            await self._send(interaction, embed, ephemeral=False)
        except discord.HTTPException:
            logger.error("Failed to send warning response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    # Fall back to environment variable if no token provided
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = TriviaBot(config)

    try:
        logger.info("Starting Trivia Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()

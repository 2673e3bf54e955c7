"""
Challenge Commands

Head-to-head challenges: propose, accept, decline and list. Accepting a
challenge turns it into a pending ranked match. A background task expires
unanswered challenges.
"""

import discord
from discord import app_commands
from discord.ext import commands, tasks

from ranks.database.database import Database
from ranks.database.match_operations import MatchOperations
from ranks.database.models import ProposedFormat
from ranks.data_models.commands import challenge_response
from ranks.operations.challenge_operations import ChallengeOperations
from ranks.operations.player_operations import PlayerOperations
from ranks.utils.embeds import build_challenge_embed, build_match_embed, player_label
from ranks.utils.error_embeds import ErrorEmbeds, send_embed
from ranks.utils.exceptions import RankedOperationError
from ranks.utils.logger import setup_logger

logger = setup_logger(__name__)

FORMAT_CHOICES = [
    app_commands.Choice(name="Best of 1", value="bo1"),
    app_commands.Choice(name="Best of 3", value="bo3"),
]


class ChallengeCog(commands.Cog):
    """Head-to-head ranked challenges"""

    def __init__(self, bot):
        self.bot = bot
        self.db: Database = bot.db
        self.challenge_ops = ChallengeOperations(bot.db)
        self.match_ops = MatchOperations(bot.db)
        self.player_ops = PlayerOperations(bot.db)
        self.logger = logger

    async def cog_load(self):
        self.cleanup_expired_challenges.start()

    def cog_unload(self):
        """Stop background tasks when cog is unloaded"""
        self.cleanup_expired_challenges.cancel()

    @tasks.loop(hours=1)
    async def cleanup_expired_challenges(self):
        """Background task to expire unanswered challenges every hour"""
        try:
            count = await self.challenge_ops.cleanup_expired_challenges()
            if count > 0:
                self.logger.info(f"Cleaned up {count} expired challenges")
        except Exception as e:
            self.logger.error(f"Error in challenge cleanup task: {e}", exc_info=True)

    @cleanup_expired_challenges.before_loop
    async def before_cleanup_task(self):
        """Wait for bot to be ready before starting cleanup task"""
        await self.bot.wait_until_ready()

    @app_commands.command(name="challenge", description="Challenge another player to a ranked match")
    @app_commands.describe(
        opponent="Player to challenge",
        match_format="Best of 1 or best of 3",
        deck="Deck you will play"
    )
    @app_commands.choices(match_format=FORMAT_CHOICES)
    async def challenge(
        self,
        interaction: discord.Interaction,
        opponent: discord.Member,
        match_format: app_commands.Choice[str],
        deck: str
    ):
        """Create a pending challenge against another player"""
        try:
            challenger = await self.player_ops.get_or_create_player(interaction.user)
            challenged = await self.player_ops.get_or_create_player(opponent)

            created = await self.challenge_ops.create_challenge(
                challenger_id=challenger.id,
                challenged_id=challenged.id,
                proposed_format=ProposedFormat(match_format.value),
                challenger_deck=deck
            )
            challenge = await self.challenge_ops.get_challenge_by_id(created.id)

            await interaction.response.send_message(
                content=opponent.mention,
                embed=build_challenge_embed(challenge, title="⚔️ New Challenge")
            )
        except RankedOperationError as e:
            await send_embed(interaction, ErrorEmbeds.operation_failed(e), ephemeral=True)

    @app_commands.command(name="challenge-accept", description="Accept a challenge and start the match")
    @app_commands.describe(challenge_id="Challenge number", deck="Deck you will play")
    async def challenge_accept(self, interaction: discord.Interaction, challenge_id: int, deck: str):
        await self._respond(interaction, "accept", challenge_id, deck)

    @app_commands.command(name="challenge-decline", description="Decline a challenge")
    @app_commands.describe(challenge_id="Challenge number")
    async def challenge_decline(self, interaction: discord.Interaction, challenge_id: int):
        await self._respond(interaction, "decline", challenge_id, None)

    async def _respond(self, interaction: discord.Interaction, action: str, challenge_id: int, deck):
        try:
            player = await self.player_ops.get_or_create_player(interaction.user)
            command = challenge_response(action, challenge_id, player.id, deck)
            result = await self.challenge_ops.respond_to_challenge(command)

            if action == "accept":
                match = await self.match_ops.get_match_by_id(result.id)
                embed = build_match_embed(match)
                embed.description = (
                    f"Challenge #{challenge_id} accepted. Both players report the result with "
                    f"`/report {match.id}`."
                )
                await interaction.response.send_message(
                    content=f"{player_label(match.player1)} vs {player_label(match.player2)}",
                    embed=embed
                )
            else:
                await interaction.response.send_message(
                    embed=discord.Embed(
                        title="Challenge Declined",
                        description=f"Challenge #{challenge_id} was declined.",
                        color=discord.Color.orange()
                    )
                )
        except RankedOperationError as e:
            await send_embed(interaction, ErrorEmbeds.operation_failed(e), ephemeral=True)

    @app_commands.command(name="challenges", description="List your pending challenges")
    async def challenges(self, interaction: discord.Interaction):
        try:
            player = await self.player_ops.get_or_create_player(interaction.user)
            incoming = await self.challenge_ops.get_incoming_challenges(player.id)
            outgoing = await self.challenge_ops.get_outgoing_challenges(player.id)
        except RankedOperationError as e:
            await send_embed(interaction, ErrorEmbeds.operation_failed(e), ephemeral=True)
            return

        embed = discord.Embed(title="⚔️ Your Challenges", color=discord.Color.blue())
        embed.add_field(
            name=f"Incoming ({len(incoming)})",
            value="\n".join(
                f"#{c.id} from {player_label(c.challenger)} ({c.proposed_format.value.upper()}, {c.challenger_deck})"
                for c in incoming[:10]
            ) or "None",
            inline=False
        )
        embed.add_field(
            name=f"Outgoing ({len(outgoing)})",
            value="\n".join(
                f"#{c.id} to {player_label(c.challenged)} ({c.proposed_format.value.upper()})"
                for c in outgoing[:10]
            ) or "None",
            inline=False
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot):
    await bot.add_cog(ChallengeCog(bot))

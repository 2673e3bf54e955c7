"""
Match Commands

Result reporting and match lookup. Each participant reports the result
independently; matching reports complete the match and apply Elo,
conflicting reports put it in dispute for an admin.
"""

import discord
from discord import app_commands
from discord.ext import commands

from ranks.database.match_operations import MatchOperations
from ranks.database.models import MatchStatus
from ranks.data_models.commands import SubmitReport
from ranks.operations.player_operations import PlayerOperations
from ranks.utils.embeds import build_match_embed, player_label
from ranks.utils.error_embeds import ErrorEmbeds, send_embed
from ranks.utils.exceptions import MatchNotFoundError, RankedOperationError
from ranks.utils.logger import setup_logger

logger = setup_logger(__name__)


def p1_games_from_score(match, winner_id: int, winner_games: int, loser_games: int) -> int:
    """Translate a winner-first score into games won by player1"""
    return winner_games if winner_id == match.player1_id else loser_games


class MatchCommandsCog(commands.Cog):
    """Match reporting and lookup commands"""

    def __init__(self, bot):
        self.bot = bot
        self.match_ops = MatchOperations(bot.db)
        self.player_ops = PlayerOperations(bot.db)
        self.logger = logger

    @app_commands.command(name="report", description="Report the result of your match")
    @app_commands.describe(
        match_id="Match number",
        winner="Who won the match",
        winner_games="Games won by the winner",
        loser_games="Games won by the loser"
    )
    async def report(
        self,
        interaction: discord.Interaction,
        match_id: int,
        winner: discord.Member,
        winner_games: app_commands.Range[int, 0, 3],
        loser_games: app_commands.Range[int, 0, 3]
    ):
        """Submit your report for a match"""
        await interaction.response.defer()
        try:
            reporter = await self.player_ops.get_or_create_player(interaction.user)
            winner_player = await self.player_ops.get_or_create_player(winner)

            match = await self.match_ops.get_match_by_id(match_id)
            if not match:
                raise MatchNotFoundError(match_id)

            status = await self.match_ops.submit_report(SubmitReport(
                match_id=match_id,
                reporter_id=reporter.id,
                reported_winner_id=winner_player.id,
                reported_p1_games_won=p1_games_from_score(match, winner_player.id, winner_games, loser_games)
            ))
            match = await self.match_ops.get_match_by_id(match_id)
        except RankedOperationError as e:
            await send_embed(interaction, ErrorEmbeds.operation_failed(e), ephemeral=True)
            return

        embed = build_match_embed(match)
        if status == MatchStatus.COMPLETED:
            embed.description = "✅ Both reports agree. The match is complete and ratings were updated."
        elif status == MatchStatus.DISPUTED:
            embed.description = "⚠️ The reports disagree. The match is disputed and awaits an admin."
        else:
            opponent = match.player2 if reporter.id == match.player1_id else match.player1
            embed.description = f"📝 Report stored. Waiting for {player_label(opponent)} to report."
        await interaction.followup.send(embed=embed)

    @app_commands.command(name="match", description="Show a match")
    @app_commands.describe(match_id="Match number")
    async def match(self, interaction: discord.Interaction, match_id: int):
        match = await self.match_ops.get_match_by_id(match_id)
        if not match:
            await send_embed(interaction, ErrorEmbeds.operation_failed(MatchNotFoundError(match_id)), ephemeral=True)
            return
        await interaction.response.send_message(embed=build_match_embed(match))

    @app_commands.command(name="my-matches", description="List your open matches")
    async def my_matches(self, interaction: discord.Interaction):
        try:
            player = await self.player_ops.get_or_create_player(interaction.user)
        except RankedOperationError as e:
            await send_embed(interaction, ErrorEmbeds.operation_failed(e), ephemeral=True)
            return

        matches = await self.match_ops.get_open_matches_for_player(player.id)
        embed = discord.Embed(title="🎮 Your Open Matches", color=discord.Color.blue())
        if not matches:
            embed.description = "You have no open matches. Use `/challenge` to start one."
        else:
            lines = []
            for match in matches[:15]:
                opponent = match.player2 if match.player1_id == player.id else match.player1
                reported = "reported" if match.report_by(player.id) else "not reported"
                lines.append(
                    f"#{match.id} vs {player_label(opponent)} "
                    f"({match.match_format.value}, {match.status.value}, {reported})"
                )
            embed.description = "\n".join(lines)
            embed.set_footer(text="Use /match <number> for details and /report to submit a result")
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot):
    await bot.add_cog(MatchCommandsCog(bot))

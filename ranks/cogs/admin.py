"""
Admin Commands

Dispute resolution, direct match creation, season rollover and player
maintenance. Every command resolves the caller's role from their Player
record (the bot owner is always an admin) and the operations enforce it.
"""

import discord
from discord import app_commands
from discord.ext import commands

from ranks.database.match_operations import MatchOperations
from ranks.database.models import MatchFormat, UserRole
from ranks.data_models.commands import AdminResolve
from ranks.operations.admin_operations import AdminOperations
from ranks.operations.player_operations import PlayerOperations
from ranks.operations.season_operations import SeasonOperations
from ranks.utils.embeds import build_match_embed, player_label
from ranks.utils.error_embeds import ErrorEmbeds, send_embed
from ranks.utils.exceptions import MatchNotFoundError, RankedOperationError
from ranks.utils.logger import setup_logger

logger = setup_logger(__name__)


class AdminCog(commands.Cog):
    """Administrative commands for ranked play"""

    def __init__(self, bot):
        self.bot = bot
        self.match_ops = MatchOperations(bot.db)
        self.season_ops = SeasonOperations(bot.db)
        self.admin_ops = AdminOperations(bot.db)
        self.player_ops = PlayerOperations(bot.db)
        self.logger = logger

    async def _actor_role(self, user: discord.abc.User) -> UserRole:
        player = await self.player_ops.get_player_by_discord_user(user)
        return PlayerOperations.resolve_role(player, user.id)

    async def _target_player(self, member: discord.Member):
        return await self.player_ops.get_or_create_player(member)

    @app_commands.command(name="admin-resolve", description="[Admin] Resolve a pending or disputed match")
    @app_commands.describe(
        match_id="Match number",
        winner="Who won the match",
        winner_games="Games won by the winner",
        loser_games="Games won by the loser"
    )
    async def admin_resolve(
        self,
        interaction: discord.Interaction,
        match_id: int,
        winner: discord.Member,
        winner_games: app_commands.Range[int, 0, 3],
        loser_games: app_commands.Range[int, 0, 3]
    ):
        await interaction.response.defer()
        try:
            actor_role = await self._actor_role(interaction.user)
            winner_player = await self.player_ops.get_player_by_discord_user(winner)
            match = await self.match_ops.get_match_by_id(match_id)
            if not match:
                raise MatchNotFoundError(match_id)
            if not winner_player or not match.is_participant(winner_player.id):
                await send_embed(
                    interaction,
                    ErrorEmbeds.invalid_input("The winner must be one of the match participants."),
                    ephemeral=True
                )
                return

            p1_games_won = winner_games if winner_player.id == match.player1_id else loser_games
            await self.match_ops.admin_resolve(AdminResolve(
                match_id=match_id,
                actor_role=actor_role,
                p1_games_won=p1_games_won
            ))
            match = await self.match_ops.get_match_by_id(match_id)
        except RankedOperationError as e:
            await send_embed(interaction, ErrorEmbeds.operation_failed(e), ephemeral=True)
            return

        self.logger.info(f"Admin {interaction.user.id} resolved Match {match_id}")
        embed = build_match_embed(match)
        embed.description = "✅ Match resolved by an admin. Ratings were updated."
        await interaction.followup.send(embed=embed)

    @app_commands.command(name="admin-create-match", description="[Admin] Create a match without a challenge")
    @app_commands.describe(
        player_a="First player",
        player_b="Second player",
        deck_a="Deck of the first player",
        deck_b="Deck of the second player",
        match_format="Best of 1 or best of 3"
    )
    @app_commands.choices(match_format=[
        app_commands.Choice(name="Best of 1", value="best-of-1"),
        app_commands.Choice(name="Best of 3", value="best-of-3"),
    ])
    async def admin_create_match(
        self,
        interaction: discord.Interaction,
        player_a: discord.Member,
        player_b: discord.Member,
        deck_a: str,
        deck_b: str,
        match_format: app_commands.Choice[str]
    ):
        await interaction.response.defer()
        try:
            actor_role = await self._actor_role(interaction.user)
            creator = await self.player_ops.get_player_by_discord_user(interaction.user)
            first = await self._target_player(player_a)
            second = await self._target_player(player_b)

            created = await self.match_ops.create_match(
                actor_role, first.id, second.id, deck_a, deck_b,
                MatchFormat(match_format.value),
                created_by=creator.id if creator else None
            )
            match = await self.match_ops.get_match_by_id(created.id)
        except RankedOperationError as e:
            await send_embed(interaction, ErrorEmbeds.operation_failed(e), ephemeral=True)
            return

        embed = build_match_embed(match)
        embed.description = f"Match created. Both players report with `/report {match.id}`."
        await interaction.followup.send(
            content=f"{player_label(match.player1)} vs {player_label(match.player2)}",
            embed=embed
        )

    @app_commands.command(name="admin-new-season", description="[Admin] End the season and reset seasonal ratings")
    async def admin_new_season(self, interaction: discord.Interaction):
        await interaction.response.defer()
        try:
            actor_role = await self._actor_role(interaction.user)
            season = await self.season_ops.rollover_season(actor_role)
        except RankedOperationError as e:
            await send_embed(interaction, ErrorEmbeds.operation_failed(e), ephemeral=True)
            return

        await interaction.followup.send(embed=discord.Embed(
            title=f"📅 Season {season.season_num} Started",
            description="All seasonal ratings were reset. Lifetime ratings are unchanged.",
            color=discord.Color.purple()
        ))

    @app_commands.command(name="admin-reset-ratings", description="[Admin] Reset a player's ratings and record")
    @app_commands.describe(member="Player to reset")
    async def admin_reset_ratings(self, interaction: discord.Interaction, member: discord.Member):
        await interaction.response.defer(ephemeral=True)
        try:
            actor_role = await self._actor_role(interaction.user)
            player = await self.player_ops.get_player_by_discord_user(member)
            if not player:
                await send_embed(interaction, ErrorEmbeds.player_not_found(member), ephemeral=True)
                return
            result = await self.admin_ops.reset_player_ratings(actor_role, player.id)
        except RankedOperationError as e:
            await send_embed(interaction, ErrorEmbeds.operation_failed(e), ephemeral=True)
            return

        await interaction.followup.send(
            embed=discord.Embed(
                title="🔄 Ratings Reset",
                description=(
                    f"{member.mention}: lifetime {result['old_elo_lifetime']:.0f} → {result['new_elo_lifetime']}, "
                    f"seasonal {result['old_elo_seasonal']:.0f} → {result['new_elo_seasonal']}"
                ),
                color=discord.Color.orange()
            ),
            ephemeral=True
        )

    @app_commands.command(name="admin-set-role", description="[Admin] Change a player's role")
    @app_commands.describe(member="Player to update", role="New role")
    @app_commands.choices(role=[
        app_commands.Choice(name="User", value="user"),
        app_commands.Choice(name="Organizer", value="organizer"),
        app_commands.Choice(name="Admin", value="admin"),
    ])
    async def admin_set_role(self, interaction: discord.Interaction, member: discord.Member,
                             role: app_commands.Choice[str]):
        try:
            actor_role = await self._actor_role(interaction.user)
            player = await self._target_player(member)
            await self.admin_ops.set_player_role(actor_role, player.id, UserRole(role.value))
        except RankedOperationError as e:
            await send_embed(interaction, ErrorEmbeds.operation_failed(e), ephemeral=True)
            return

        await interaction.response.send_message(
            f"✅ {member.mention} is now **{role.name}**.", ephemeral=True
        )

    @app_commands.command(name="admin-disputes", description="[Admin] List disputed matches")
    async def admin_disputes(self, interaction: discord.Interaction):
        actor_role = await self._actor_role(interaction.user)
        if actor_role != UserRole.ADMIN:
            await send_embed(interaction, ErrorEmbeds.permission_denied(), ephemeral=True)
            return

        matches = await self.match_ops.get_disputed_matches()
        embed = discord.Embed(title="⚠️ Disputed Matches", color=discord.Color.orange())
        if not matches:
            embed.description = "No disputed matches."
        else:
            lines = []
            for match in matches[:20]:
                claims = ", ".join(
                    f"P{1 if r.reporter_id == match.player1_id else 2} says P1 won {r.reported_p1_games_won}"
                    for r in match.reports
                )
                lines.append(
                    f"#{match.id} {player_label(match.player1)} vs {player_label(match.player2)} "
                    f"({match.match_format.value}): {claims}"
                )
            embed.description = "\n".join(lines)
            embed.set_footer(text="Resolve with /admin-resolve")
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot):
    await bot.add_cog(AdminCog(bot))

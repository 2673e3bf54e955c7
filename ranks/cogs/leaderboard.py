import discord
from discord import app_commands
from discord.ext import commands
from typing import Optional
from ranks.database.models import RatingTrack
from ranks.operations.player_operations import PlayerOperations
from ranks.operations.season_operations import SeasonOperations
from ranks.services.leaderboard import LeaderboardService
from ranks.services.profile import ProfileService
from ranks.services.rating_history import RatingHistoryService
from ranks.utils.embeds import (
    build_leaderboard_embed, build_profile_embed, build_history_embed, build_seasons_embed
)
from ranks.utils.error_embeds import ErrorEmbeds
from ranks.utils.exceptions import RankedOperationError
import logging

logger = logging.getLogger(__name__)

TRACK_CHOICES = [
    app_commands.Choice(name="Lifetime", value="lifetime"),
    app_commands.Choice(name="Seasonal", value="seasonal"),
]


class LeaderboardCog(commands.Cog):
    """Leaderboard, profile and rating history commands"""

    def __init__(self, bot):
        self.bot = bot
        self.leaderboard_service = LeaderboardService(bot.db.session_factory)
        self.profile_service = ProfileService(bot.db.session_factory)
        self.history_service = RatingHistoryService(bot.db.session_factory)
        self.player_ops = PlayerOperations(bot.db)
        self.season_ops = SeasonOperations(bot.db)

    @app_commands.command(name="leaderboard", description="View the ranked leaderboard")
    @app_commands.describe(track="Lifetime or seasonal rating")
    @app_commands.choices(track=TRACK_CHOICES)
    async def leaderboard(
        self,
        interaction: discord.Interaction,
        track: Optional[app_commands.Choice[str]] = None
    ):
        """Display the leaderboard for a rating track."""
        await interaction.response.defer()

        try:
            rating_track = RatingTrack(track.value) if track else RatingTrack.LIFETIME
            leaderboard_data = await self.leaderboard_service.get_leaderboard(rating_track)
            await interaction.followup.send(embed=build_leaderboard_embed(leaderboard_data))

        except ValueError as e:
            await interaction.followup.send(embed=ErrorEmbeds.invalid_input(str(e)))
        except Exception as e:
            logger.error(f"Error in leaderboard command: {e}")
            await interaction.followup.send(embed=ErrorEmbeds.command_error("An error occurred while fetching leaderboard data. Please try again later."))

    @app_commands.command(name="profile", description="View a player's ranked profile")
    @app_commands.describe(member="Player to view (defaults to you)")
    async def profile(self, interaction: discord.Interaction, member: Optional[discord.Member] = None):
        """Display a player's profile."""
        await interaction.response.defer()
        target = member or interaction.user

        try:
            player = await self.player_ops.get_player_by_discord_user(target)
            if not player:
                await interaction.followup.send(embed=ErrorEmbeds.player_not_found(target))
                return

            profile_data = await self.profile_service.get_profile_data(player.id)
            await interaction.followup.send(embed=build_profile_embed(profile_data, target))

        except RankedOperationError as e:
            await interaction.followup.send(embed=ErrorEmbeds.operation_failed(e))
        except Exception as e:
            logger.error(f"Error in profile command: {e}")
            await interaction.followup.send(embed=ErrorEmbeds.command_error("An error occurred while fetching profile data. Please try again later."))

    @app_commands.command(name="rating-history", description="View a player's rating over time")
    @app_commands.describe(member="Player to view (defaults to you)", track="Lifetime or seasonal rating")
    @app_commands.choices(track=TRACK_CHOICES)
    async def rating_history(
        self,
        interaction: discord.Interaction,
        member: Optional[discord.Member] = None,
        track: Optional[app_commands.Choice[str]] = None
    ):
        """Display a player's rating history."""
        await interaction.response.defer()
        target = member or interaction.user
        rating_track = RatingTrack(track.value) if track else RatingTrack.LIFETIME

        try:
            player = await self.player_ops.get_player_by_discord_user(target)
            if not player:
                await interaction.followup.send(embed=ErrorEmbeds.player_not_found(target))
                return

            points = await self.history_service.get_rating_history(player.username, rating_track)
            if len(points) <= 1:
                await interaction.followup.send(embed=ErrorEmbeds.no_match_history())
                return
            await interaction.followup.send(
                embed=build_history_embed(player.display_name or player.username, rating_track.value, points)
            )

        except RankedOperationError as e:
            await interaction.followup.send(embed=ErrorEmbeds.operation_failed(e))
        except Exception as e:
            logger.error(f"Error in rating-history command: {e}")
            await interaction.followup.send(embed=ErrorEmbeds.command_error("An error occurred while building rating history. Please try again later."))

    @app_commands.command(name="seasons", description="List ranked seasons")
    async def seasons(self, interaction: discord.Interaction):
        seasons = await self.season_ops.list_seasons()
        await interaction.response.send_message(embed=build_seasons_embed(seasons))


async def setup(bot):
    await bot.add_cog(LeaderboardCog(bot))

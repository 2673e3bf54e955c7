"""
Centralized error embeds for consistent error handling across the ranking bot.

Provides standardized error messages and formatting so every rejected
command tells the user why.
"""

import discord
from typing import Optional

from ranks.utils.exceptions import (
    RankedOperationError, NotFoundError, AuthorizationError, ValidationError, StateConflictError
)


async def send_embed(interaction: discord.Interaction, embed: discord.Embed, ephemeral: bool = False) -> None:
    """Send an embed whether or not the interaction was already answered or deferred."""
    if interaction.response.is_done():
        await interaction.followup.send(embed=embed, ephemeral=ephemeral)
    else:
        await interaction.response.send_message(embed=embed, ephemeral=ephemeral)


class ErrorEmbeds:
    """Centralized error embed factory for consistent error handling."""

    @staticmethod
    def player_not_found(member: Optional[discord.abc.User] = None) -> discord.Embed:
        """Create embed for when a player is not found in the database."""
        if member:
            description = f"{member.mention} hasn't played a ranked match yet!\n\nUse `/challenge` to start playing!"
        else:
            description = "This player hasn't played a ranked match yet!\n\nUse `/challenge` to start playing!"

        return discord.Embed(
            title="Player Not Found",
            description=description,
            color=discord.Color.red()
        )

    @staticmethod
    def no_match_history() -> discord.Embed:
        """Create embed for when a player has no match history."""
        return discord.Embed(
            title="No Match History",
            description="This player hasn't completed any matches yet.",
            color=discord.Color.orange()
        )

    @staticmethod
    def command_error(error: str) -> discord.Embed:
        """Create embed for general command errors."""
        return discord.Embed(
            title="Command Error",
            description=f"An error occurred: {error}\n\nPlease try again or contact an administrator.",
            color=discord.Color.red()
        )

    @staticmethod
    def invalid_input(message: str) -> discord.Embed:
        """Create embed for invalid user input."""
        return discord.Embed(
            title="Invalid Input",
            description=message,
            color=discord.Color.red()
        )

    @staticmethod
    def permission_denied() -> discord.Embed:
        """Create embed for permission errors."""
        return discord.Embed(
            title="Permission Denied",
            description="You don't have permission to perform this action.",
            color=discord.Color.red()
        )

    @staticmethod
    def operation_failed(error: RankedOperationError) -> discord.Embed:
        """Create embed for a rejected ranked operation, titled by error category."""
        if isinstance(error, NotFoundError):
            title, color = "Not Found", discord.Color.red()
        elif isinstance(error, AuthorizationError):
            title, color = "Permission Denied", discord.Color.red()
        elif isinstance(error, ValidationError):
            title, color = "Invalid Input", discord.Color.red()
        elif isinstance(error, StateConflictError):
            title, color = "Action Not Allowed", discord.Color.orange()
        else:
            title, color = "Operation Failed", discord.Color.red()

        return discord.Embed(
            title=title,
            description=error.user_message,
            color=color
        )

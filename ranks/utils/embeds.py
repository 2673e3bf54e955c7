"""
Shared embed utilities for the ranking bot.

Provides reusable embed building functions to keep formatting consistent
across cogs.
"""

import discord
from typing import List, Optional

from ranks.data_models.leaderboard import LeaderboardPage, RatingPoint
from ranks.data_models.profile import ProfileData
from ranks.database.models import Challenge, Match, MatchStatus, Player, Season
from ranks.utils.elo import EloCalculator

STATUS_COLORS = {
    MatchStatus.PENDING: discord.Color.blue(),
    MatchStatus.DISPUTED: discord.Color.orange(),
    MatchStatus.COMPLETED: discord.Color.green(),
}


def player_label(player: Optional[Player]) -> str:
    """Mention for players linked to Discord, display name otherwise"""
    if player is None:
        return "Unknown"
    if player.discord_id:
        return f"<@{player.discord_id}>"
    return player.display_name or player.username


def build_challenge_embed(challenge: Challenge, title: str = "⚔️ Challenge") -> discord.Embed:
    embed = discord.Embed(
        title=f"{title} #{challenge.id}",
        description=(
            f"{player_label(challenge.challenger)} challenges {player_label(challenge.challenged)} "
            f"to a **{challenge.proposed_format.value.upper()}** match."
        ),
        color=discord.Color.blue()
    )
    embed.add_field(name="Challenger Deck", value=challenge.challenger_deck, inline=True)
    embed.add_field(name="Status", value=challenge.status.value.title(), inline=True)
    if challenge.expires_at:
        embed.add_field(name="Expires", value=f"{challenge.expires_at:%Y-%m-%d %H:%M} UTC", inline=True)
    embed.set_footer(text=f"Respond with /challenge-accept {challenge.id} or /challenge-decline {challenge.id}")
    return embed


def build_match_embed(match: Match) -> discord.Embed:
    """
    Build the match detail embed.

    Expects player1, player2 and reports to be loaded on the match.
    """
    embed = discord.Embed(
        title=f"🎮 Match #{match.id} ({match.match_format.value})",
        color=STATUS_COLORS.get(match.status, discord.Color.blue())
    )
    embed.add_field(
        name="Player 1",
        value=f"{player_label(match.player1)}\nDeck: {match.deck1}\nElo: {match.elo_lifetime_start_p1:.0f}",
        inline=True
    )
    embed.add_field(
        name="Player 2",
        value=f"{player_label(match.player2)}\nDeck: {match.deck2}\nElo: {match.elo_lifetime_start_p2:.0f}",
        inline=True
    )
    embed.add_field(name="Status", value=match.status.value.title(), inline=False)

    if match.status == MatchStatus.COMPLETED:
        total_games = EloCalculator.get_total_games(match.match_format)
        p1_games = match.resolved_p1_games_won
        changes = EloCalculator.calculate_match_elo_changes(
            match.elo_lifetime_start_p1, match.elo_lifetime_start_p2, p1_games, total_games
        )
        result = (
            f"Winner: {player_label(match.winner)} ({p1_games}-{total_games - p1_games})\n"
            f"Elo: P1 {EloCalculator.format_elo_change(changes.player1_change)} / "
            f"P2 {EloCalculator.format_elo_change(changes.player2_change)}"
        )
        if match.resolved_by_admin:
            result += "\nResolved by an admin"
        embed.add_field(name="Result", value=result, inline=False)
    else:
        win_chance = EloCalculator.calculate_win_probability(match.elo_lifetime_start_p1, match.elo_lifetime_start_p2)
        embed.add_field(
            name="Win Chance (per game)",
            value=f"P1 {win_chance:.1f}% / P2 {100 - win_chance:.1f}%",
            inline=False
        )

    if match.status != MatchStatus.COMPLETED and match.reports:
        report_lines = []
        for report in match.reports:
            reporter = match.player1 if report.reporter_id == match.player1_id else match.player2
            report_lines.append(
                f"{player_label(reporter)}: P1 won {report.reported_p1_games_won} game(s)"
            )
        embed.add_field(name="Reports", value="\n".join(report_lines), inline=False)

    return embed


def build_profile_embed(profile_data: ProfileData, target_member: Optional[discord.abc.User]) -> discord.Embed:
    """
    Build the main profile embed with all stats.

    Args:
        profile_data: Profile data containing all player statistics
        target_member: Discord user/member for avatar (can be None)

    Returns:
        Formatted Discord embed ready for display
    """
    embed_color = discord.Color.gold() if profile_data.lifetime_rank == 1 else discord.Color.blue()
    embed = discord.Embed(
        title=f"🏆 Ranked Profile: {profile_data.display_name}",
        color=embed_color
    )

    if target_member:
        embed.set_thumbnail(url=target_member.display_avatar.url)

    embed.add_field(
        name="📊 Ratings",
        value=(
            f"**Lifetime Elo:** {profile_data.elo_lifetime:,} (#{profile_data.lifetime_rank})\n"
            f"**Seasonal Elo:** {profile_data.elo_seasonal:,} (#{profile_data.seasonal_rank})\n"
            f"**Players:** {profile_data.total_players:,}"
        ),
        inline=True
    )

    embed.add_field(
        name="⚔️ Match History",
        value=(
            f"**Total Matches:** {profile_data.total_matches}\n"
            f"**Wins:** {profile_data.wins} | **Losses:** {profile_data.losses}\n"
            f"**Win Rate:** {profile_data.win_rate:.1f}%\n"
            f"**Current Streak:** {profile_data.current_streak or '-'}"
        ),
        inline=True
    )

    if profile_data.recent_matches:
        lines = []
        for record in profile_data.recent_matches[:5]:
            icon = "✅" if record.result == 'win' else "❌"
            lines.append(
                f"{icon} vs {record.opponent_name} {record.games_won}-{record.games_lost} "
                f"({EloCalculator.format_elo_change(record.elo_change_lifetime)})"
            )
        embed.add_field(name="🕒 Recent Matches", value="\n".join(lines), inline=False)

    if profile_data.open_matches:
        embed.set_footer(text=f"{profile_data.open_matches} open match(es) - see /my-matches")

    return embed


def build_leaderboard_embed(
    leaderboard_data: LeaderboardPage,
    empty_message: str = "The leaderboard is empty."
) -> discord.Embed:
    """
    Build leaderboard embed as a fixed-width table.

    Args:
        leaderboard_data: LeaderboardPage data containing entries and metadata
        empty_message: Custom message to show when leaderboard is empty
    """
    embed = discord.Embed(
        title=f"{leaderboard_data.track.title()} Leaderboard",
        description=f"Sorted by: **{leaderboard_data.track.title()} Elo**",
        color=discord.Color.gold()
    )

    if not leaderboard_data.entries:
        embed.description += f"\n\n{empty_message}"
        return embed

    lines = ["```"]
    lines.append(f"{'Rank':<6} {'Player':<20} {'Elo':<6} {'W/M':<9} {'Win%':<6}")
    lines.append("-" * 50)

    for entry in leaderboard_data.entries:
        player_name = entry.display_name[:18]
        record = f"{entry.wins}/{entry.matches_played}"
        lines.append(
            f"{entry.rank:<6} {player_name:<20} {entry.elo:<6} {record:<9} {entry.win_rate:<6.1f}"
        )

    lines.append("```")
    embed.description += "\n" + "\n".join(lines)

    embed.set_footer(text=f"Showing {len(leaderboard_data.entries)} of {leaderboard_data.total_players} players")
    return embed


def build_history_embed(display_name: str, track: str, points: List[RatingPoint], max_points: int = 15) -> discord.Embed:
    embed = discord.Embed(
        title=f"📈 {track.title()} Rating History: {display_name}",
        color=discord.Color.blue()
    )
    if len(points) <= 1:
        embed.description = "No completed matches yet."
        return embed

    shown = points[-max_points:]
    lines = ["```"]
    for point in shown:
        lines.append(f"{point.timestamp:%Y-%m-%d %H:%M}  {point.rating:7.1f}")
    lines.append("```")
    embed.description = "\n".join(lines)

    peak = max(point.rating for point in points)
    embed.set_footer(text=f"Current {points[-1].rating:.1f} | Peak {peak:.1f} | {len(points) - 1} change(s)")
    return embed


def build_seasons_embed(seasons: List[Season]) -> discord.Embed:
    embed = discord.Embed(title="📅 Seasons", color=discord.Color.purple())
    if not seasons:
        embed.description = "No seasons yet."
        return embed

    lines = []
    for season in seasons:
        end = f"{season.end_date:%Y-%m-%d}" if season.end_date else "ongoing"
        marker = " (active)" if season.is_active else ""
        lines.append(f"**Season {season.season_num}**{marker}: {season.start_date:%Y-%m-%d} to {end}")
    embed.description = "\n".join(lines)
    return embed

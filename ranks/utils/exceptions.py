"""
Exceptions raised by the challenge, match, season and admin operations.

Every rejection carries a user-facing message. The four intermediate
classes group rejections the way callers need to react to them.
"""


class RankedOperationError(Exception):
    """Base exception for all ranked operations."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


class NotFoundError(RankedOperationError):
    """A referenced player, challenge or match does not exist."""


class AuthorizationError(RankedOperationError):
    """The actor is not allowed to perform the operation."""


class ValidationError(RankedOperationError):
    """The request is malformed and was rejected before any state change."""


class StateConflictError(RankedOperationError):
    """The target is not in a state that allows the operation."""


# Not found

class PlayerNotFoundError(NotFoundError):
    def __init__(self, player_ref):
        super().__init__(
            f"Player {player_ref} not found",
            f"❌ Player `{player_ref}` is not registered!"
        )


class ChallengeNotFoundError(NotFoundError):
    def __init__(self, challenge_id: int):
        super().__init__(
            f"Challenge {challenge_id} not found",
            f"❌ Challenge #{challenge_id} does not exist."
        )


class MatchNotFoundError(NotFoundError):
    def __init__(self, match_id: int):
        super().__init__(
            f"Match {match_id} not found",
            f"❌ Match #{match_id} does not exist."
        )


# Authorization

class NotChallengedPlayerError(AuthorizationError):
    def __init__(self, challenge_id: int, player_id: int):
        super().__init__(
            f"Player {player_id} is not the challenged player of challenge {challenge_id}",
            "❌ Only the challenged player can respond to this challenge."
        )


class NotParticipantError(AuthorizationError):
    def __init__(self, match_id: int, player_id: int):
        super().__init__(
            f"Player {player_id} is not a participant in match {match_id}",
            "❌ Only match participants can report results."
        )


class NotAdminError(AuthorizationError):
    def __init__(self, action: str):
        super().__init__(
            f"Admin role required for {action}",
            "❌ Administrative privileges are required for this action."
        )


# Validation

class SelfChallengeError(ValidationError):
    def __init__(self):
        super().__init__("Players cannot challenge themselves", "❌ You cannot challenge yourself.")


class DuplicateChallengeError(ValidationError):
    def __init__(self, player_a_id: int, player_b_id: int):
        super().__init__(
            f"Pending challenge already exists between players {player_a_id} and {player_b_id}",
            "❌ There is already a pending challenge between you two."
        )


class DeckRequiredError(ValidationError):
    def __init__(self):
        super().__init__("A deck is required", "❌ Deck selection is required.")


class InvalidGamesWonError(ValidationError):
    def __init__(self, games_won, match_format):
        super().__init__(
            f"Invalid games won count {games_won} for {match_format.value}",
            f"❌ `{games_won}` is not a valid games-won count for a {match_format.value} match."
        )


class InvalidWinnerError(ValidationError):
    def __init__(self, match_id: int, winner_id):
        super().__init__(
            f"Reported winner {winner_id} is not a participant in match {match_id}",
            "❌ The reported winner must be one of the match participants."
        )


class InvalidResultError(ValidationError):
    def __init__(self, detail: str):
        super().__init__(f"Invalid match result: {detail}", f"❌ Invalid match result: {detail}")


class InvalidCommandError(ValidationError):
    def __init__(self, detail: str):
        super().__init__(f"Invalid command: {detail}", f"❌ {detail}")


# State conflicts

class ChallengeNotPendingError(StateConflictError):
    def __init__(self, challenge_id: int, status):
        super().__init__(
            f"Challenge {challenge_id} is {status.value}, not pending",
            f"❌ This challenge is {status.value} and can no longer be answered."
        )


class MatchAlreadyCompletedError(StateConflictError):
    def __init__(self, match_id: int):
        super().__init__(
            f"Match {match_id} is already completed",
            f"❌ Match #{match_id} is already completed."
        )


class MatchDisputedError(StateConflictError):
    def __init__(self, match_id: int):
        super().__init__(
            f"Match {match_id} is disputed and awaits admin resolution",
            f"❌ Match #{match_id} is disputed. An admin will resolve it."
        )


class SeasonRolloverConflictError(StateConflictError):
    """Raised when another rollover changed the active season first."""
    def __init__(self, season_num: int = None):
        ended = f"Season {season_num}" if season_num is not None else "The active season"
        super().__init__(
            f"{ended} was already rolled over concurrently",
            "❌ Another season rollover just happened. Check `/seasons` before trying again."
        )


class StaleMatchError(StateConflictError):
    """Raised when a match changed between read and compare-and-swap."""
    def __init__(self, match_id: int):
        super().__init__(
            f"Match {match_id} was modified concurrently",
            "❌ This match was updated at the same time. Please try again."
        )

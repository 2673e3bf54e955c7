"""
Command objects accepted by the challenge and match operations.

Each command is validated when it is constructed, so the operations only
ever see well-typed input. Cogs build these from slash command arguments.
"""

from dataclasses import dataclass
from typing import Union

from ranks.database.models import UserRole
from ranks.utils.exceptions import DeckRequiredError, InvalidCommandError


def _require_id(value, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidCommandError(f"{name} must be a positive integer")


def _require_games(value, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidCommandError(f"{name} must be an integer")


def _clean_deck(deck) -> str:
    if deck is None or not isinstance(deck, str) or not deck.strip():
        raise DeckRequiredError()
    deck = deck.strip()
    if len(deck) > 100:
        raise InvalidCommandError("Deck name must be at most 100 characters")
    return deck


@dataclass(frozen=True)
class AcceptChallenge:
    challenge_id: int
    actor_id: int
    deck: str

    def __post_init__(self):
        _require_id(self.challenge_id, "challenge_id")
        _require_id(self.actor_id, "actor_id")
        object.__setattr__(self, 'deck', _clean_deck(self.deck))


@dataclass(frozen=True)
class DeclineChallenge:
    challenge_id: int
    actor_id: int

    def __post_init__(self):
        _require_id(self.challenge_id, "challenge_id")
        _require_id(self.actor_id, "actor_id")


@dataclass(frozen=True)
class SubmitReport:
    match_id: int
    reporter_id: int
    reported_winner_id: int
    reported_p1_games_won: int

    def __post_init__(self):
        _require_id(self.match_id, "match_id")
        _require_id(self.reporter_id, "reporter_id")
        _require_id(self.reported_winner_id, "reported_winner_id")
        _require_games(self.reported_p1_games_won, "reported_p1_games_won")


@dataclass(frozen=True)
class AdminResolve:
    match_id: int
    actor_role: UserRole
    p1_games_won: int

    def __post_init__(self):
        _require_id(self.match_id, "match_id")
        if not isinstance(self.actor_role, UserRole):
            raise InvalidCommandError("actor_role must be a UserRole")
        _require_games(self.p1_games_won, "p1_games_won")


ChallengeResponse = Union[AcceptChallenge, DeclineChallenge]


def challenge_response(action: str, challenge_id: int, actor_id: int, deck: str = None) -> ChallengeResponse:
    """Build the command for an accept/decline action string."""
    action = (action or "").strip().lower()
    if action == "accept":
        return AcceptChallenge(challenge_id=challenge_id, actor_id=actor_id, deck=deck)
    if action == "decline":
        return DeclineChallenge(challenge_id=challenge_id, actor_id=actor_id)
    raise InvalidCommandError(f"Unknown action '{action}', expected 'accept' or 'decline'")

from matches.models.match import Match, MatchPlayer
from matches.models.invite import MatchInvite

__all__ = ["Match", "MatchPlayer", "MatchInvite"]

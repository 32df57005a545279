from matches.services.match import MatchService

__all__ = ["MatchService"]

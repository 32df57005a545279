from matches.serializers.match import (
    CreateMatchSerializer,
    MatchInviteSerializer,
    MatchSerializer,
    RespondInviteSerializer,
)

__all__ = [
    "MatchSerializer",
    "CreateMatchSerializer",
    "MatchInviteSerializer",
    "RespondInviteSerializer",
]

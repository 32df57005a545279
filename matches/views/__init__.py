from matches.views.match import (
    CloseMatchView,
    CreateMatchView,
    JoinMatchView,
    MatchDetailView,
    PublicMatchListView,
)
from matches.views.invite import RequestInviteView, RespondInviteView

__all__ = [
    "CreateMatchView",
    "PublicMatchListView",
    "MatchDetailView",
    "JoinMatchView",
    "CloseMatchView",
    "RequestInviteView",
    "RespondInviteView",
]

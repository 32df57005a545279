from django.urls import path

from matches.views import (
    CloseMatchView,
    CreateMatchView,
    JoinMatchView,
    MatchDetailView,
    PublicMatchListView,
    RequestInviteView,
    RespondInviteView,
)

urlpatterns = [
    path("", CreateMatchView.as_view(), name="match-create"),
    path("public/", PublicMatchListView.as_view(), name="match-public"),
    path("<int:pk>/", MatchDetailView.as_view(), name="match-detail"),
    path("<int:pk>/join", JoinMatchView.as_view(), name="match-join"),
    path("<int:pk>/close", CloseMatchView.as_view(), name="match-close"),
    path("invite/<str:code>", RequestInviteView.as_view(), name="match-invite-request"),
    path(
        "invites/<int:pk>/respond",
        RespondInviteView.as_view(),
        name="match-invite-respond",
    ),
]

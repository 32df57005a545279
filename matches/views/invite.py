import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from courtside.exceptions import MarketplaceError
from matches.serializers import MatchInviteSerializer, RespondInviteSerializer
from matches.services import MatchService
from notifications.services import notify

logger = logging.getLogger(__name__)


class RequestInviteView(APIView):
    """
    POST /api/matches/invite/<code> — Ask to join a private match.

    Answers 201 for a new invite and 200 when a pending one already exists.
    """

    def post(self, request, code, *args, **kwargs):
        try:
            invite, created = MatchService.request_invite(code, request.user.pk)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)

        if not created:
            return Response(MatchInviteSerializer(invite).data, status=status.HTTP_200_OK)

        notify(
            invite.match.host_id,
            f"User #{request.user.pk} asked to join match #{invite.match_id}.",
            event="invite_requested",
        )
        return Response(MatchInviteSerializer(invite).data, status=status.HTTP_201_CREATED)


class RespondInviteView(APIView):
    """
    POST /api/matches/invites/<id>/respond — Host accepts or rejects an invite.

    Request body: {"action": "accept" | "reject"}
    """

    def post(self, request, pk, *args, **kwargs):
        serializer = RespondInviteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            invite = MatchService.respond_invite(
                pk, request.user.pk, serializer.validated_data["action"]
            )
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)

        notify(
            invite.user_id,
            f"Your request to join match #{invite.match_id} was {invite.status}.",
            event=f"invite_{invite.status}",
        )
        return Response(MatchInviteSerializer(invite).data)

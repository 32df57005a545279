import logging

from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from courtside.exceptions import MarketplaceError
from matches.serializers import CreateMatchSerializer, MatchSerializer
from matches.services import MatchService

logger = logging.getLogger(__name__)


class CreateMatchView(APIView):
    """
    POST /api/matches/ — Host a new match.

    Request body: {"court_id", "start_time", "capacity": 2|4, "is_public", "title"?, "match_type"?}
    """

    def post(self, request, *args, **kwargs):
        serializer = CreateMatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            match = MatchService.create_match(host_id=request.user.pk, **serializer.validated_data)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)
        except ValueError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(
            MatchSerializer(match, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )


class PublicMatchListView(ListAPIView):
    """GET /api/matches/public/ — Open public matches."""

    permission_classes = [AllowAny]
    serializer_class = MatchSerializer

    def get_queryset(self):
        return MatchService.list_public_matches()


class MatchDetailView(APIView):
    """GET /api/matches/<id>/ — Match details with roster."""

    permission_classes = [AllowAny]

    def get(self, request, pk, *args, **kwargs):
        try:
            match = MatchService.get_match(pk)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)
        return Response(MatchSerializer(match, context={"request": request}).data)


class JoinMatchView(APIView):
    """POST /api/matches/<id>/join — Join an open public match."""

    def post(self, request, pk, *args, **kwargs):
        try:
            match = MatchService.join_public_match(pk, request.user.pk)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)
        return Response(MatchSerializer(match, context={"request": request}).data)


class CloseMatchView(APIView):
    """POST /api/matches/<id>/close — Host closes the match."""

    def post(self, request, pk, *args, **kwargs):
        try:
            match = MatchService.close_match(pk, request.user.pk)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)
        return Response(MatchSerializer(match, context={"request": request}).data)

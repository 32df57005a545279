import logging
import secrets

from django.db import transaction
from django.utils import timezone

from courtside.exceptions import (
    AlreadyJoined,
    Forbidden,
    Full,
    InvalidState,
    NotFound,
    translate_storage_errors,
)
from matches.models import Match, MatchInvite, MatchPlayer

logger = logging.getLogger(__name__)

INVITE_CODE_BYTES = 24


def _lock_match(match_id: int) -> Match:
    match = Match.objects.select_for_update().filter(pk=match_id).first()
    if match is None:
        raise NotFound("Match not found.")
    return match


def _add_player(match: Match, user_id: int) -> MatchPlayer:
    # Caller holds the row lock on ``match``
    if match.has_player(user_id):
        raise AlreadyJoined()
    if match.player_count() >= match.capacity:
        raise Full()
    return MatchPlayer.objects.create(match=match, user_id=user_id)


class MatchService:
    """
    Match roster and invite workflow.

    Public matches are joined directly; private matches are reached through
    an invite code and a host-approved invite. Every roster change locks the
    match row first, which serialises concurrent joins and invite accepts on
    the same match and keeps the roster within capacity.
    """

    @staticmethod
    def list_public_matches():
        return (
            Match.objects.filter(is_public=True, status=Match.Status.OPEN)
            .prefetch_related("roster")
        )

    @staticmethod
    def get_match(match_id: int) -> Match:
        match = Match.objects.prefetch_related("roster", "invites").filter(pk=match_id).first()
        if match is None:
            raise NotFound("Match not found.")
        return match

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def create_match(
        host_id: int,
        court_id: int,
        start_time,
        capacity: int,
        is_public: bool,
        title: str = "",
        match_type: str = Match.MatchType.FRIENDLY,
    ) -> Match:
        """
        Create a match with the host as its first player.

        Private matches get an unguessable invite code.

        Raises:
            ValueError: If capacity is not 2 or 4, or match_type is unknown.
        """
        if capacity not in Match.ALLOWED_CAPACITIES:
            raise ValueError("Capacity must be 2 or 4.")
        if match_type not in Match.MatchType.values:
            raise ValueError(f"Unknown match type: {match_type}")

        match = Match.objects.create(
            host_id=host_id,
            court_id=court_id,
            start_time=start_time,
            capacity=capacity,
            is_public=is_public,
            title=title,
            match_type=match_type,
            status=Match.Status.OPEN,
            invite_code=None if is_public else secrets.token_urlsafe(INVITE_CODE_BYTES),
        )
        MatchPlayer.objects.create(match=match, user_id=host_id)

        logger.info(
            "Match created: match=%d host=%s capacity=%d public=%s",
            match.pk,
            host_id,
            capacity,
            is_public,
        )
        return match

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def join_public_match(match_id: int, user_id: int) -> Match:
        """
        Add a user to an open public match.

        Raises:
            NotFound: If the match doesn't exist.
            InvalidState: If the match is private or closed.
            AlreadyJoined: If the user is already on the roster.
            Full: If the roster is at capacity.
        """
        match = _lock_match(match_id)
        if not match.is_public or not match.is_open:
            raise InvalidState("Match is not open for public joining.")

        _add_player(match, user_id)
        logger.info("Player joined match: match=%d user=%s", match.pk, user_id)
        return match

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def request_invite(invite_code: str, user_id: int):
        """
        Ask the host of a private match to let the user in.

        Returns:
            ``(invite, created)``. A pending invite that already exists for
            the user is returned with ``created=False`` instead of creating
            another one.

        Raises:
            NotFound: If no private match has this invite code.
            InvalidState: If the match is closed.
            AlreadyJoined: If the user is already on the roster.
        """
        match = (
            Match.objects.select_for_update()
            .filter(invite_code=invite_code, is_public=False)
            .first()
        )
        if match is None:
            raise NotFound("Match not found.")
        if not match.is_open:
            raise InvalidState("Match is closed.")
        if match.has_player(user_id):
            raise AlreadyJoined()

        invite, created = MatchInvite.objects.get_or_create(
            match=match,
            user_id=user_id,
            status=MatchInvite.Status.PENDING,
        )
        if created:
            logger.info("Invite requested: match=%d user=%s invite=%d", match.pk, user_id, invite.pk)
        return invite, created

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def respond_invite(invite_id: int, host_id: int, action: str) -> MatchInvite:
        """
        Accept or reject a pending invite as the match host.

        Accepting adds the invitee to the roster under the match lock. When
        the roster is full the call fails and the invite stays pending, so
        the host can accept it once a slot frees up.

        Raises:
            ValueError: If action is neither ``accept`` nor ``reject``.
            NotFound: If the invite doesn't exist.
            Forbidden: If the caller is not the host.
            InvalidState: If the invite was already answered or the match is closed.
            AlreadyJoined: If the invitee is already on the roster.
            Full: If the roster is at capacity.
        """
        if action not in ("accept", "reject"):
            raise ValueError("Action must be 'accept' or 'reject'.")

        invite = MatchInvite.objects.select_related("match").filter(pk=invite_id).first()
        if invite is None:
            raise NotFound("Invite not found.")
        if invite.match.host_id != host_id:
            raise Forbidden("Only the host can respond to invites.")

        match = _lock_match(invite.match_id)
        invite = MatchInvite.objects.select_for_update().get(pk=invite.pk)
        if invite.status != MatchInvite.Status.PENDING:
            raise InvalidState(f"Invite is already {invite.status}.")

        if action == "accept":
            if not match.is_open:
                raise InvalidState("Match is closed.")
            _add_player(match, invite.user_id)
            invite.status = MatchInvite.Status.ACCEPTED
        else:
            invite.status = MatchInvite.Status.REJECTED

        invite.responded_at = timezone.now()
        invite.save(update_fields=["status", "responded_at", "updated_at"])

        logger.info(
            "Invite %s: invite=%d match=%d user=%s",
            invite.status,
            invite.pk,
            match.pk,
            invite.user_id,
        )
        return invite

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def close_match(match_id: int, host_id: int) -> Match:
        """
        Close a match; no further joins or invite accepts are allowed.

        Raises:
            NotFound: If the match doesn't exist.
            Forbidden: If the caller is not the host.
        """
        match = _lock_match(match_id)
        if match.host_id != host_id:
            raise Forbidden("Only the host can close the match.")

        if match.is_open:
            match.status = Match.Status.CLOSED
            match.save(update_fields=["status", "updated_at"])
            logger.info("Match closed: match=%d host=%s", match.pk, host_id)
        return match

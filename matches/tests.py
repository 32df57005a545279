import threading
from datetime import timedelta
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import IntegrityError, connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIClient

from courtside.exceptions import AlreadyJoined, Forbidden, Full, InvalidState, NotFound
from matches.models import Match, MatchInvite, MatchPlayer
from matches.services import MatchService

User = get_user_model()


def make_user(username):
    return User.objects.create_user(username=username, password="pass1234")


def kickoff():
    return timezone.now() + timedelta(days=2)


def roster(match):
    return list(MatchPlayer.objects.filter(match=match).values_list("user_id", flat=True))


# ============================================================
# Model Tests
# ============================================================


class MatchModelTest(TestCase):
    def setUp(self):
        self.host = make_user("host")

    def test_capacity_constraint(self):
        with self.assertRaises(IntegrityError):
            Match.objects.create(host=self.host, court_id=1, start_time=kickoff(), capacity=3)

    def test_player_unique_per_match(self):
        match = Match.objects.create(host=self.host, court_id=1, start_time=kickoff(), capacity=2)
        MatchPlayer.objects.create(match=match, user=self.host)
        with self.assertRaises(IntegrityError):
            MatchPlayer.objects.create(match=match, user=self.host)

    def test_roster_helpers(self):
        match = Match.objects.create(host=self.host, court_id=1, start_time=kickoff(), capacity=2)
        MatchPlayer.objects.create(match=match, user=self.host)
        self.assertTrue(match.is_open)
        self.assertTrue(match.has_player(self.host.pk))
        self.assertEqual(match.player_count(), 1)
        self.assertIn("2 players", str(match))


# ============================================================
# Match Service Tests
# ============================================================


class CreateMatchTest(TestCase):
    def setUp(self):
        self.host = make_user("host")

    def test_public_match_has_host_on_roster(self):
        match = MatchService.create_match(self.host.pk, 5, kickoff(), 4, True, title="Sunday doubles")

        self.assertEqual(match.status, Match.Status.OPEN)
        self.assertIsNone(match.invite_code)
        self.assertEqual(roster(match), [self.host.pk])

    def test_private_match_gets_invite_code(self):
        first = MatchService.create_match(self.host.pk, 5, kickoff(), 2, False)
        second = MatchService.create_match(self.host.pk, 5, kickoff(), 2, False)

        self.assertTrue(first.invite_code)
        self.assertGreaterEqual(len(first.invite_code), 32)
        self.assertNotEqual(first.invite_code, second.invite_code)

    def test_invalid_capacity(self):
        for capacity in (0, 1, 3, 5):
            with self.subTest(capacity=capacity):
                with self.assertRaises(ValueError):
                    MatchService.create_match(self.host.pk, 5, kickoff(), capacity, True)
        self.assertFalse(Match.objects.exists())

    def test_invalid_match_type(self):
        with self.assertRaises(ValueError):
            MatchService.create_match(self.host.pk, 5, kickoff(), 2, True, match_type="ranked")


class JoinPublicMatchTest(TestCase):
    def setUp(self):
        self.host = make_user("host")
        self.players = [make_user(f"player{i}") for i in range(4)]
        self.match = MatchService.create_match(self.host.pk, 5, kickoff(), 4, True)

    def test_join_success(self):
        MatchService.join_public_match(self.match.pk, self.players[0].pk)
        self.assertIn(self.players[0].pk, roster(self.match))

    def test_join_until_full(self):
        for player in self.players[:3]:
            MatchService.join_public_match(self.match.pk, player.pk)

        with self.assertRaises(Full):
            MatchService.join_public_match(self.match.pk, self.players[3].pk)

        self.assertEqual(len(roster(self.match)), 4)
        self.assertNotIn(self.players[3].pk, roster(self.match))

    def test_join_twice(self):
        MatchService.join_public_match(self.match.pk, self.players[0].pk)
        with self.assertRaises(AlreadyJoined):
            MatchService.join_public_match(self.match.pk, self.players[0].pk)
        self.assertEqual(len(roster(self.match)), 2)

    def test_host_cannot_join_again(self):
        with self.assertRaises(AlreadyJoined):
            MatchService.join_public_match(self.match.pk, self.host.pk)

    def test_join_closed_match(self):
        MatchService.close_match(self.match.pk, self.host.pk)
        with self.assertRaises(InvalidState):
            MatchService.join_public_match(self.match.pk, self.players[0].pk)

    def test_join_private_match_directly(self):
        private = MatchService.create_match(self.host.pk, 5, kickoff(), 2, False)
        with self.assertRaises(InvalidState):
            MatchService.join_public_match(private.pk, self.players[0].pk)

    def test_join_missing_match(self):
        with self.assertRaises(NotFound):
            MatchService.join_public_match(99999, self.players[0].pk)

    def test_list_public_matches(self):
        MatchService.create_match(self.host.pk, 5, kickoff(), 2, False)
        closed = MatchService.create_match(self.host.pk, 5, kickoff(), 2, True)
        MatchService.close_match(closed.pk, self.host.pk)

        self.assertEqual(list(MatchService.list_public_matches()), [self.match])


class InviteFlowTest(TestCase):
    def setUp(self):
        self.host = make_user("host")
        self.guest = make_user("guest")
        self.match = MatchService.create_match(self.host.pk, 5, kickoff(), 2, False)

    def test_request_creates_pending_invite(self):
        invite, _ = MatchService.request_invite(self.match.invite_code, self.guest.pk)
        self.assertEqual(invite.status, MatchInvite.Status.PENDING)
        self.assertEqual(invite.match_id, self.match.pk)

    def test_request_twice_returns_same_invite(self):
        first, created = MatchService.request_invite(self.match.invite_code, self.guest.pk)
        self.assertTrue(created)
        second, created = MatchService.request_invite(self.match.invite_code, self.guest.pk)
        self.assertFalse(created)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(MatchInvite.objects.count(), 1)

    def test_request_with_unknown_code(self):
        with self.assertRaises(NotFound):
            MatchService.request_invite("not-a-code", self.guest.pk)

    def test_request_by_player_on_roster(self):
        with self.assertRaises(AlreadyJoined):
            MatchService.request_invite(self.match.invite_code, self.host.pk)

    def test_request_on_closed_match(self):
        MatchService.close_match(self.match.pk, self.host.pk)
        with self.assertRaises(InvalidState):
            MatchService.request_invite(self.match.invite_code, self.guest.pk)

    def test_accept_adds_player(self):
        invite, _ = MatchService.request_invite(self.match.invite_code, self.guest.pk)

        invite = MatchService.respond_invite(invite.pk, self.host.pk, "accept")

        self.assertEqual(invite.status, MatchInvite.Status.ACCEPTED)
        self.assertIsNotNone(invite.responded_at)
        self.assertEqual(roster(self.match), [self.host.pk, self.guest.pk])

    def test_reject_leaves_roster_unchanged(self):
        invite, _ = MatchService.request_invite(self.match.invite_code, self.guest.pk)

        invite = MatchService.respond_invite(invite.pk, self.host.pk, "reject")

        self.assertEqual(invite.status, MatchInvite.Status.REJECTED)
        self.assertEqual(roster(self.match), [self.host.pk])

    def test_rejected_user_can_request_again(self):
        invite, _ = MatchService.request_invite(self.match.invite_code, self.guest.pk)
        MatchService.respond_invite(invite.pk, self.host.pk, "reject")

        again, _ = MatchService.request_invite(self.match.invite_code, self.guest.pk)
        self.assertNotEqual(again.pk, invite.pk)
        self.assertEqual(again.status, MatchInvite.Status.PENDING)

    def test_only_host_can_respond(self):
        invite, _ = MatchService.request_invite(self.match.invite_code, self.guest.pk)
        with self.assertRaises(Forbidden):
            MatchService.respond_invite(invite.pk, self.guest.pk, "accept")
        invite.refresh_from_db()
        self.assertEqual(invite.status, MatchInvite.Status.PENDING)

    def test_respond_twice(self):
        invite, _ = MatchService.request_invite(self.match.invite_code, self.guest.pk)
        MatchService.respond_invite(invite.pk, self.host.pk, "accept")
        with self.assertRaises(InvalidState):
            MatchService.respond_invite(invite.pk, self.host.pk, "reject")

    def test_unknown_action(self):
        invite, _ = MatchService.request_invite(self.match.invite_code, self.guest.pk)
        with self.assertRaises(ValueError):
            MatchService.respond_invite(invite.pk, self.host.pk, "maybe")

    def test_respond_missing_invite(self):
        with self.assertRaises(NotFound):
            MatchService.respond_invite(99999, self.host.pk, "accept")

    def test_accept_when_full_keeps_invite_pending(self):
        late = make_user("late")
        first, _ = MatchService.request_invite(self.match.invite_code, self.guest.pk)
        second, _ = MatchService.request_invite(self.match.invite_code, late.pk)
        MatchService.respond_invite(first.pk, self.host.pk, "accept")

        with self.assertRaises(Full):
            MatchService.respond_invite(second.pk, self.host.pk, "accept")

        second.refresh_from_db()
        self.assertEqual(second.status, MatchInvite.Status.PENDING)
        self.assertEqual(len(roster(self.match)), 2)

    def test_accept_on_closed_match(self):
        invite, _ = MatchService.request_invite(self.match.invite_code, self.guest.pk)
        MatchService.close_match(self.match.pk, self.host.pk)
        with self.assertRaises(InvalidState):
            MatchService.respond_invite(invite.pk, self.host.pk, "accept")

    def test_reject_on_closed_match(self):
        invite, _ = MatchService.request_invite(self.match.invite_code, self.guest.pk)
        MatchService.close_match(self.match.pk, self.host.pk)
        invite = MatchService.respond_invite(invite.pk, self.host.pk, "reject")
        self.assertEqual(invite.status, MatchInvite.Status.REJECTED)

    def test_close_by_non_host(self):
        with self.assertRaises(Forbidden):
            MatchService.close_match(self.match.pk, self.guest.pk)

    def test_close_is_idempotent(self):
        MatchService.close_match(self.match.pk, self.host.pk)
        match = MatchService.close_match(self.match.pk, self.host.pk)
        self.assertEqual(match.status, Match.Status.CLOSED)


class ConcurrentJoinTest(TransactionTestCase):
    """Eight players race for the three open seats of a capacity-4 match."""

    def setUp(self):
        self.host = make_user("host")
        self.players = [make_user(f"player{i}") for i in range(8)]
        self.match = MatchService.create_match(self.host.pk, 5, kickoff(), 4, True)

    def test_roster_never_exceeds_capacity(self):
        joined, errors = [], []
        barrier = threading.Barrier(len(self.players))

        def join(user_id):
            try:
                barrier.wait()
                MatchService.join_public_match(self.match.pk, user_id)
                joined.append(user_id)
            except Exception as exc:
                errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=join, args=(p.pk,)) for p in self.players]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual([exc for exc in errors if not isinstance(exc, Full)], [])
        self.assertEqual(len(joined) + len(errors), len(self.players))
        members = roster(self.match)
        self.assertLessEqual(len(members), 4)
        self.assertEqual(len(members), len(set(members)))
        self.assertEqual(sorted(members), sorted([self.host.pk] + joined))
        self.assertEqual(len(joined), 3)


# ============================================================
# API Tests
# ============================================================


@patch("matches.views.invite.notify")
class MatchAPITest(TestCase):
    def setUp(self):
        self.host = make_user("host")
        self.guest = make_user("guest")
        self.client = APIClient()
        self.client.force_authenticate(user=self.host)
        self.guest_client = APIClient()
        self.guest_client.force_authenticate(user=self.guest)

    def create(self, **overrides):
        payload = {
            "court_id": 3,
            "start_time": kickoff().isoformat(),
            "capacity": 2,
            "is_public": True,
        }
        payload.update(overrides)
        return self.client.post("/api/matches/", payload, format="json")

    def test_create_match(self, mock_notify):
        response = self.create(title="Evening singles")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["players"], [self.host.pk])
        self.assertEqual(response.data["match_type"], "friendly")

    def test_create_match_bad_capacity(self, mock_notify):
        response = self.create(capacity=3)
        self.assertEqual(response.status_code, 400)

    def test_public_list_is_anonymous(self, mock_notify):
        self.create()
        self.create(is_public=False)

        response = APIClient().get("/api/matches/public/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)

    def test_invite_code_only_visible_to_host(self, mock_notify):
        match_id = self.create(is_public=False).data["id"]

        host_view = self.client.get(f"/api/matches/{match_id}/")
        guest_view = self.guest_client.get(f"/api/matches/{match_id}/")

        self.assertTrue(host_view.data["invite_code"])
        self.assertIsNone(guest_view.data["invite_code"])

    def test_join_and_full(self, mock_notify):
        match_id = self.create().data["id"]

        response = self.guest_client.post(f"/api/matches/{match_id}/join")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["players"], [self.host.pk, self.guest.pk])

        late = APIClient()
        late.force_authenticate(user=make_user("late"))
        response = late.post(f"/api/matches/{match_id}/join")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["error"], "Match is full.")

    def test_join_missing_match(self, mock_notify):
        response = self.guest_client.post("/api/matches/99999/join")
        self.assertEqual(response.status_code, 404)

    def test_invite_round_trip(self, mock_notify):
        match = Match.objects.get(pk=self.create(is_public=False).data["id"])

        response = self.guest_client.post(f"/api/matches/invite/{match.invite_code}")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], "pending")
        mock_notify.assert_called_with(
            self.host.pk,
            f"User #{self.guest.pk} asked to join match #{match.pk}.",
            event="invite_requested",
        )

        invite_id = response.data["id"]
        response = self.client.post(
            f"/api/matches/invites/{invite_id}/respond", {"action": "accept"}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "accepted")
        self.assertEqual(mock_notify.call_args.args[0], self.guest.pk)
        self.assertEqual(roster(match), [self.host.pk, self.guest.pk])

    def test_repeated_invite_request_answers_ok(self, mock_notify):
        match = Match.objects.get(pk=self.create(is_public=False).data["id"])

        first = self.guest_client.post(f"/api/matches/invite/{match.invite_code}")
        second = self.guest_client.post(f"/api/matches/invite/{match.invite_code}")

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(first.data["id"], second.data["id"])
        self.assertEqual(mock_notify.call_count, 1)

    def test_respond_by_non_host(self, mock_notify):
        match = Match.objects.get(pk=self.create(is_public=False).data["id"])
        invite, _ = MatchService.request_invite(match.invite_code, self.guest.pk)

        response = self.guest_client.post(
            f"/api/matches/invites/{invite.pk}/respond", {"action": "accept"}, format="json"
        )
        self.assertEqual(response.status_code, 403)

    def test_respond_invalid_action(self, mock_notify):
        match = Match.objects.get(pk=self.create(is_public=False).data["id"])
        invite, _ = MatchService.request_invite(match.invite_code, self.guest.pk)

        response = self.client.post(
            f"/api/matches/invites/{invite.pk}/respond", {"action": "maybe"}, format="json"
        )
        self.assertEqual(response.status_code, 400)

    def test_close_match(self, mock_notify):
        match_id = self.create().data["id"]

        response = self.guest_client.post(f"/api/matches/{match_id}/close")
        self.assertEqual(response.status_code, 403)

        response = self.client.post(f"/api/matches/{match_id}/close")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "closed")

from django.conf import settings
from django.db import models

from courtside.models import BaseModel


class Match(BaseModel):
    """
    A hosted game on a court with a fixed roster capacity of 2 or 4.

    The roster is kept in ``MatchPlayer`` rows. Services lock the match row
    with ``select_for_update()`` before counting and adding players, so the
    capacity check and the insert happen under one lock.
    """

    class Status(models.TextChoices):
        OPEN = "open", "Open"
        CLOSED = "closed", "Closed"

    class MatchType(models.TextChoices):
        FRIENDLY = "friendly", "Friendly"
        COMPETITIVE = "competitive", "Competitive"

    ALLOWED_CAPACITIES = (2, 4)

    host = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="hosted_matches",
    )
    title = models.CharField(max_length=120, blank=True, default="")
    match_type = models.CharField(
        max_length=12,
        choices=MatchType.choices,
        default=MatchType.FRIENDLY,
    )
    court_id = models.PositiveBigIntegerField(db_index=True)
    start_time = models.DateTimeField()
    capacity = models.PositiveSmallIntegerField()
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.OPEN,
    )
    is_public = models.BooleanField(default=True)
    invite_code = models.CharField(max_length=64, unique=True, null=True, blank=True)
    players = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through="MatchPlayer",
        related_name="matches",
    )

    class Meta(BaseModel.Meta):
        constraints = [
            models.CheckConstraint(
                condition=models.Q(capacity__in=[2, 4]),
                name="match_capacity_2_or_4",
            ),
        ]
        indexes = [
            models.Index(fields=["is_public", "status"], name="idx_match_public_status"),
        ]

    def __str__(self):
        return f"Match {self.id} | court {self.court_id} | {self.capacity} players | {self.status}"

    @property
    def is_open(self):
        return self.status == self.Status.OPEN

    def has_player(self, user_id) -> bool:
        return self.roster.filter(user_id=user_id).exists()

    def player_count(self) -> int:
        return self.roster.count()


class MatchPlayer(models.Model):
    """A roster slot: one user in one match."""

    match = models.ForeignKey(Match, on_delete=models.CASCADE, related_name="roster")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="match_slots",
    )
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["joined_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["match", "user"], name="uniq_match_player"),
        ]

    def __str__(self):
        return f"User {self.user_id} in match {self.match_id}"

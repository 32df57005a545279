from django.conf import settings
from django.db import models

from courtside.models import BaseModel
from matches.models.match import Match


class MatchInvite(BaseModel):
    """
    A request to join a private match, answered by the host.

    A user has at most one PENDING invite per match at a time.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        ACCEPTED = "accepted", "Accepted"
        REJECTED = "rejected", "Rejected"

    match = models.ForeignKey(Match, on_delete=models.CASCADE, related_name="invites")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="match_invites",
    )
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
    )
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta(BaseModel.Meta):
        constraints = [
            models.UniqueConstraint(
                fields=["match", "user"],
                condition=models.Q(status="pending"),
                name="uniq_pending_invite",
            ),
        ]

    def __str__(self):
        return f"Invite {self.id} | match {self.match_id} | user {self.user_id} | {self.status}"

from rest_framework import serializers

from matches.models import Match, MatchInvite


class MatchSerializer(serializers.ModelSerializer):
    """Match with its roster. The invite code is only shown to the host."""

    players = serializers.SerializerMethodField()
    invite_code = serializers.SerializerMethodField()

    class Meta:
        model = Match
        fields = (
            "id",
            "host",
            "title",
            "match_type",
            "court_id",
            "start_time",
            "capacity",
            "status",
            "is_public",
            "invite_code",
            "players",
            "created_at",
        )
        read_only_fields = fields

    def get_players(self, obj):
        return [slot.user_id for slot in obj.roster.all()]

    def get_invite_code(self, obj):
        request = self.context.get("request")
        if request is not None and request.user.pk == obj.host_id:
            return obj.invite_code
        return None


class CreateMatchSerializer(serializers.Serializer):
    """Validates match creation requests."""

    title = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")
    match_type = serializers.ChoiceField(
        choices=Match.MatchType.choices, required=False, default=Match.MatchType.FRIENDLY
    )
    court_id = serializers.IntegerField(min_value=1)
    start_time = serializers.DateTimeField()
    capacity = serializers.ChoiceField(choices=Match.ALLOWED_CAPACITIES)
    is_public = serializers.BooleanField()


class MatchInviteSerializer(serializers.ModelSerializer):
    class Meta:
        model = MatchInvite
        fields = ("id", "match", "user", "status", "responded_at", "created_at")
        read_only_fields = fields


class RespondInviteSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=("accept", "reject"))

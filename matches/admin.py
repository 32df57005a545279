from django.contrib import admin

from courtside.admin import ReadOnlyAdminMixin
from matches.models import Match, MatchInvite, MatchPlayer


class MatchPlayerInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = MatchPlayer
    extra = 0
    fields = ("user", "joined_at")
    readonly_fields = fields


@admin.register(Match)
class MatchAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "host",
        "court_id",
        "start_time",
        "capacity",
        "status",
        "is_public",
    )
    list_filter = ("status", "is_public", "match_type")
    exclude = ("invite_code",)
    inlines = (MatchPlayerInline,)


@admin.register(MatchInvite)
class MatchInviteAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("id", "match", "user", "status", "responded_at", "created_at")
    list_filter = ("status",)

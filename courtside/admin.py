class ReadOnlyAdminMixin:
    """
    Makes an admin model browse-only.

    Balances, ledger entries, payments and rosters must only change through
    the services, which take the row locks the invariants depend on.
    """

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

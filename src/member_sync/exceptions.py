"""
Exception hierarchy for the member sync service.

Pass-level failures abort a whole pass, member-level failures only abort
the member they belong to. Neither ever escapes ReconciliationEngine.run_pass.
"""


class SyncError(Exception):
    """Base exception for member sync errors."""

    pass


class ConfigurationError(SyncError):
    """Raised when settings are missing or invalid."""

    pass


class SourceUnavailableError(SyncError):
    """Raised when the legacy database cannot be queried after retries."""

    pass


class TargetStoreError(SyncError):
    """Raised when the application store rejects a read or write."""

    pass


class PassLevelFailure(SyncError):
    """Raised when a pass cannot even partition the member batch."""

    pass


class MemberSyncError(SyncError):
    """Raised when one member's create/update or reconciliation fails."""

    def __init__(self, member_code: str, message: str):
        super().__init__(f"Member {member_code}: {message}")
        self.member_code = member_code


class MemberTimeoutError(MemberSyncError):
    """Raised when a member's pipeline exceeds its time budget."""

    pass

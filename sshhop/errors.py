"""Exception taxonomy shared by the session, transfer engine and CLI."""


class SshhopError(Exception):
    """Base class for every error sshhop reports to the user."""


class AuthError(SshhopError):
    """No usable credential: the remote side refused authentication."""


class ConnectError(SshhopError):
    """Host unreachable, unknown, or misconfigured."""


class RemoteCommandError(SshhopError):
    """A remote shell command exited non-zero."""

    def __init__(self, command, exit_status, stderr=""):
        self.command = command
        self.exit_status = exit_status
        self.stderr = (stderr or "").strip()
        detail = self.stderr or f"exit status {exit_status}"
        super().__init__(f"remote command failed: {detail}")


class ValidationError(SshhopError):
    """A local or remote path failed validation before any work started."""


class TransferError(SshhopError):
    """The copy tool could not start or exited with an error."""


class CancellationError(SshhopError):
    """The user aborted a running transfer."""

    def __init__(self, message="transfer cancelled"):
        super().__init__(message)


class PickerUnavailableError(SshhopError):
    """No native file dialog backend is installed."""

"""Error kinds raised by devx core modules.

Core code raises these; commands catch DevxError, print the message and exit 1.
"""


class DevxError(Exception):
    """Base class for all devx operational errors."""

    pass


class ValidationError(DevxError):
    """Input rejected by a name or port validator. No state was changed."""

    pass


class WorktreeConflict(DevxError):
    """Workspace directory exists on another branch or is not a worktree."""

    pass


class BranchInUse(DevxError):
    """Branch is already checked out in another worktree."""

    pass


class PortExhaustion(DevxError):
    """Allocator could not find enough distinct free ports."""

    pass


class StoreCorruption(DevxError):
    """A session, registry or config file failed to parse."""

    pass


class NotFound(DevxError):
    """Session or project alias is absent."""

    pass


class ExternalUnavailable(DevxError):
    """An external tool or service (git, tmux, caddy...) is not reachable."""

    pass


class SubprocessFailure(DevxError):
    """An invoked tool exited non-zero.

    Attributes:
        stderr: Captured standard error of the failed invocation.
        returncode: Exit status, or None if the process never finished.
    """

    def __init__(self, message: str, stderr: str = "", returncode: int | None = None):
        if stderr.strip():
            message = f"{message}\n{stderr.strip()}"
        super().__init__(message)
        self.stderr = stderr
        self.returncode = returncode

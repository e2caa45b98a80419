"""Custom exceptions for bootcheck."""

from __future__ import annotations

import enum
from typing import List, Optional


class HarnessError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class CommandError(HarnessError):
    """An external command exited non-zero or could not be started."""

    def __init__(self, cmd: List[str], returncode: Optional[int], stdout: str = "", stderr: str = "") -> None:
        self.cmd = cmd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip()
        if returncode is None:
            message = f"Could not run {cmd[0]}"
            if detail:
                message += f": {detail}"
        else:
            message = f"Command failed (exit {returncode}): {' '.join(cmd)}"
            if detail:
                message += f"\n{detail}"
        super().__init__(message)


class VmmLaunchError(HarnessError):
    """The VMM executable could not be spawned."""


class SSHErrorKind(enum.Enum):
    CONNECTION = "connection"
    HANDSHAKE = "handshake"
    AUTHENTICATION = "authentication"
    CHANNEL_SESSION = "channel_session"
    COMMAND = "command"


class SSHCommandError(HarnessError):
    """A remote command could not be run; ``kind`` names the failing phase."""

    def __init__(self, kind: SSHErrorKind, host: str, detail: str = "") -> None:
        self.kind = kind
        self.host = host
        message = f"SSH {kind.value} error ({host})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class BootError(HarnessError):
    """A boot test case failed; ``state`` is the stage that was being attempted."""

    def __init__(self, state, cause: Exception) -> None:
        self.state = state
        self.cause = cause
        super().__init__(f"boot test failed during {state.value}: {cause}")

    @property
    def kind(self) -> Optional[SSHErrorKind]:
        return getattr(self.cause, "kind", None)

"""Remote command execution over SSH for bootcheck.

The guest is considered ready once its SSH service accepts the test
credentials, so ``ssh_command`` keeps retrying with a linear backoff until
the login succeeds or the attempt budget runs out.
"""

from __future__ import annotations

import socket
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

try:
    import paramiko  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("paramiko is required but not installed") from exc

from bootcheck.constants import DEFAULT_SSH_RETRIES, DEFAULT_SSH_TIMEOUT
from bootcheck.exceptions import HarnessError, SSHCommandError, SSHErrorKind
from bootcheck.utils import log

T = TypeVar("T")

_TRANSPORT_ERRORS = (paramiko.SSHException, OSError, EOFError)


def linear_backoff(base: float) -> Callable[[int], float]:
    """Wait ``base * n`` seconds after the n-th failed attempt."""
    return lambda attempt: base * attempt


def retry(
    operation: Callable[[], T],
    attempts: int,
    backoff: Callable[[int], float],
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """Call ``operation`` until it succeeds, at most ``attempts`` times.

    The error from the final attempt propagates unchanged.
    """
    if attempts < 1:
        raise HarnessError(f"attempts must be >= 1 (got {attempts})")
    failures = 0
    while True:
        try:
            return operation()
        except retry_on as exc:
            failures += 1
            if failures >= attempts:
                log("WARN", f"Attempt {failures}/{attempts} failed: {exc}; giving up")
                raise
            delay = backoff(failures)
            log("WARN", f"Attempt {failures}/{attempts} failed: {exc}; retrying in {delay}s")
            (sleep or time.sleep)(delay)


def _read_output(channel) -> str:
    # The guest may drop the session as soon as the command runs
    chunks = []
    try:
        while True:
            data = channel.recv(32768)
            if not data:
                break
            chunks.append(data)
        channel.close()
    except _TRANSPORT_ERRORS as exc:
        log("DEBUG", f"Ignoring error while reading command output: {exc}")
    return b"".join(chunks).decode("utf-8", errors="replace")


def run_ssh_once(
    host: str,
    command: str,
    username: str,
    password: str,
    port: int = 22,
    connect_timeout: float = 10.0,
) -> str:
    """Open one SSH session, run ``command`` and return its output."""
    try:
        sock = socket.create_connection((host, port), timeout=connect_timeout)
    except OSError as exc:
        raise SSHCommandError(SSHErrorKind.CONNECTION, host, str(exc)) from exc

    try:
        transport = paramiko.Transport(sock)
    except _TRANSPORT_ERRORS as exc:
        sock.close()
        raise SSHCommandError(SSHErrorKind.HANDSHAKE, host, str(exc)) from exc

    try:
        try:
            transport.start_client(timeout=connect_timeout)
        except _TRANSPORT_ERRORS as exc:
            raise SSHCommandError(SSHErrorKind.HANDSHAKE, host, str(exc)) from exc

        try:
            transport.auth_password(username, password)
        except _TRANSPORT_ERRORS as exc:
            raise SSHCommandError(SSHErrorKind.AUTHENTICATION, host, str(exc)) from exc
        if not transport.is_authenticated():
            raise SSHCommandError(SSHErrorKind.AUTHENTICATION, host, f"{username} not authenticated")

        try:
            channel = transport.open_session()
        except _TRANSPORT_ERRORS as exc:
            raise SSHCommandError(SSHErrorKind.CHANNEL_SESSION, host, str(exc)) from exc

        try:
            channel.exec_command(command)
        except _TRANSPORT_ERRORS as exc:
            raise SSHCommandError(SSHErrorKind.COMMAND, host, str(exc)) from exc

        return _read_output(channel)
    finally:
        transport.close()


def ssh_command(
    host: str,
    command: str,
    username: str = "cloud",
    password: str = "cloud123",
    retries: int = DEFAULT_SSH_RETRIES,
    timeout: float = DEFAULT_SSH_TIMEOUT,
    port: int = 22,
    connect_timeout: float = 10.0,
) -> str:
    """Run ``command`` on ``host``, retrying until the guest accepts the login.

    Raises SSHCommandError of the last attempt's kind after ``retries`` failures.
    """
    log("INFO", f"Running '{command}' on {host} (up to {retries} attempts)")
    return retry(
        lambda: run_ssh_once(host, command, username, password, port, connect_timeout),
        attempts=retries,
        backoff=linear_backoff(timeout),
        retry_on=(SSHCommandError,),
    )

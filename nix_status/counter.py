"""
Process-count query for Nix Status.

Runs ``pgrep -c`` (or a compatible tool) with a user filter derived from
the configured :class:`UserScope` and returns the parsed counts.  The
command is built as an argument list and never passes through a shell,
so the pattern may contain any characters.

The BSD pgrep shipped with macOS has no count option (``-c`` selects a
login class there), so on those systems the PIDs it lists are counted.

pgrep exit statuses:
  0   one or more processes matched
  1   nothing matched (``-c`` still prints ``0``)
  2   syntax error in the command line
  3   fatal error
  127 returned by wrappers (``env``, shells) when the tool is missing
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading

from nix_status.errors import (
    QueryError,
    QueryExecutionFailed,
    QueryOutputMalformed,
    QueryToolMissing,
)
from nix_status.models import Count, Failure, StatusUpdate, UserScope
from nix_status.platform_utils import PGREP_HAS_COUNT

logger = logging.getLogger(__name__)

DEFAULT_EXECUTABLE = "pgrep"

_EXIT_MATCHED = 0
_EXIT_NO_MATCH = 1
_EXIT_NOT_FOUND = 127


def parse_counts(stdout: str) -> list[int]:
    """Parse whitespace-separated non-negative integers from *stdout*."""
    tokens = stdout.split()
    if not tokens:
        raise QueryOutputMalformed("Query produced no output")
    counts = []
    for token in tokens:
        if not (token.isascii() and token.isdigit()):
            raise QueryOutputMalformed(f"Unexpected query output: {token!r}")
        counts.append(int(token))
    return counts


def count_pids(stdout: str) -> int:
    """Count the PIDs listed one per line in *stdout*."""
    pids = stdout.split()
    for pid in pids:
        if not (pid.isascii() and pid.isdigit()):
            raise QueryOutputMalformed(f"Unexpected query output: {pid!r}")
    return len(pids)


class ProcessCounter:
    """
    Counts running processes matching a name pattern.

    Parameters
    ----------
    executable : str
        The count tool to run (``pgrep`` by default).
    uid : int, optional
        The UID used for :attr:`UserScope.SELF`; defaults to the current user.
    stop_grace : float
        Seconds :meth:`terminate` waits for the child before killing it.
    count_flag : bool, optional
        Whether the tool understands ``-c``.  Without it the listed PIDs
        are counted.  Defaults to what the platform's pgrep supports.
    """

    def __init__(
        self,
        executable: str = DEFAULT_EXECUTABLE,
        uid: int | None = None,
        stop_grace: float = 1.0,
        count_flag: bool | None = None,
    ):
        self.executable = executable
        self.uid = os.getuid() if uid is None else uid
        self.count_flag = PGREP_HAS_COUNT if count_flag is None else count_flag
        self._stop_grace = stop_grace
        self._proc: subprocess.Popen | None = None
        self._closed = False
        self._lock = threading.Lock()

    def user_flags(self, scope: UserScope) -> list[str]:
        """Return the pgrep user-filter arguments for *scope*."""
        if scope is UserScope.SELF:
            return ["-U", str(self.uid)]
        if scope is UserScope.SELF_AND_ROOT:
            return ["-U", f"{self.uid},0"]
        return []

    def build_command(self, scope: UserScope, pattern: str) -> list[str]:
        mode = ["-c"] if self.count_flag else []
        return [self.executable, *mode, *self.user_flags(scope), "--", pattern]

    def count(self, scope: UserScope, pattern: str) -> list[StatusUpdate]:
        """
        Run one query and return its status updates.

        A successful query yields one ``Count`` per integer printed, in
        output order.  A failed query yields a single ``Failure``.
        """
        try:
            counts = self._run(self.build_command(scope, pattern))
        except QueryError as exc:
            logger.warning("Process query failed (%s): %s", exc.kind.value, exc)
            return [Failure(exc.kind, str(exc))]
        logger.debug("Process query returned %s", counts)
        return [Count(n) for n in counts]

    def terminate(self) -> None:
        """Terminate the in-flight query, killing it after the grace period.

        The counter stays closed until :meth:`reopen`: queries fail
        immediately in the meantime.
        """
        with self._lock:
            self._closed = True
            proc = self._proc
        if proc is None or proc.poll() is not None:
            return
        logger.info("Terminating in-flight query (pid %d).", proc.pid)
        proc.terminate()
        try:
            proc.wait(timeout=self._stop_grace)
        except subprocess.TimeoutExpired:
            logger.warning("Query did not exit within %.1fs; killing.", self._stop_grace)
            proc.kill()

    def reopen(self) -> None:
        """Accept queries again after :meth:`terminate`."""
        with self._lock:
            self._closed = False

    # ---- internals ----

    def _run(self, cmd: list[str]) -> list[int]:
        if self._closed:
            raise QueryExecutionFailed("Query cancelled: counter terminated")
        logger.debug("Running %s", cmd)
        try:
            # Undecodable bytes become U+FFFD and fail parsing as malformed
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise QueryToolMissing(f"Cannot run {cmd[0]}: {exc}") from exc
        except OSError as exc:
            raise QueryExecutionFailed(f"Cannot start {cmd[0]}: {exc}") from exc

        with self._lock:
            self._proc = proc
            closed = self._closed
        if closed:
            # terminate() ran while the child was being spawned
            proc.kill()
        try:
            stdout, stderr = proc.communicate()
        finally:
            with self._lock:
                self._proc = None

        code = proc.returncode
        if code == _EXIT_NOT_FOUND:
            raise QueryToolMissing(f"{cmd[0]} not found (exit status 127)")
        if code not in (_EXIT_MATCHED, _EXIT_NO_MATCH):
            detail = (stderr or "").strip()
            if code < 0:
                message = f"{cmd[0]} killed by signal {-code}"
            else:
                message = f"{cmd[0]} exited with status {code}"
            raise QueryExecutionFailed(f"{message}: {detail}" if detail else message)
        if not self.count_flag:
            return [count_pids(stdout or "")]
        return parse_counts(stdout or "")

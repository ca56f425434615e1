"""
Parallel command execution across a resolved group

Example:
    from tools.dsh.executor import ParallelExecutor
    from tools.dsh.remote import ParamikoRemote

    executor = ParallelExecutor(ParamikoRemote())
    report = executor.run(resolved, "uptime", max_concurrency=5, per_host_timeout=30)
    print(f"Succeeded: {report.succeeded}/{report.total}")
"""

import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional

from .config import debug_log, get_command_timeout, get_max_concurrency
from .errors import (
    AuthenticationFailed,
    CommandTimeout,
    ConnectionRefused,
    HostKeyMismatch,
    RemoteError,
)
from .models import (
    ExecutionReport,
    ExecutionResult,
    FailureReason,
    GroupMembership,
    HostState,
    ResolvedGroup,
)


_REASONS = (
    (HostKeyMismatch, FailureReason.HOST_KEY_MISMATCH),
    (ConnectionRefused, FailureReason.CONNECTION_REFUSED),
    (AuthenticationFailed, FailureReason.AUTHENTICATION_FAILED),
)


def _reason_for(error: RemoteError) -> FailureReason:
    for error_class, reason in _REASONS:
        if isinstance(error, error_class):
            return reason
    return FailureReason.CONNECTION_ERROR


class ParallelExecutor:
    """
    Run one command on every member of a resolved group

    Args:
        remote: Object with verify_host_key(host, expected_key, timeout) and
            execute(as_user, member, command, timeout, expected_key)
        max_concurrency: Default pool size, defaults to DSH_MAX_CONCURRENCY
        per_host_timeout: Default per-host timeout, defaults to DSH_COMMAND_TIMEOUT
        clock: Monotonic clock in seconds
    """

    def __init__(
        self,
        remote,
        max_concurrency: Optional[int] = None,
        per_host_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.remote = remote
        self.max_concurrency = max_concurrency
        self.per_host_timeout = per_host_timeout
        self._clock = clock

    def run(
        self,
        resolved: ResolvedGroup,
        command: str,
        max_concurrency: Optional[int] = None,
        per_host_timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExecutionReport:
        """
        Execute command on all members, at most max_concurrency at a time

        Hosts are dispatched in member order. Setting cancel_event stops
        further dispatching; hosts already running are waited for. Host
        failures are recorded in the report, never raised.

        Raises:
            ValueError: If the group has no admin account or the limits are invalid
        """
        if max_concurrency is None:
            max_concurrency = self.max_concurrency if self.max_concurrency is not None else get_max_concurrency()
        if per_host_timeout is None:
            per_host_timeout = self.per_host_timeout if self.per_host_timeout is not None else get_command_timeout()
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")
        if per_host_timeout <= 0:
            raise ValueError(f"per_host_timeout must be positive, got {per_host_timeout}")
        if not resolved.admin_user:
            raise ValueError(f"Group {resolved.name} has no admin account to execute as")

        members = list(resolved.members)
        results: List[Optional[ExecutionResult]] = [None] * len(members)
        pending = deque(enumerate(members))
        in_flight: Dict = {}

        def cancelled() -> bool:
            return cancel_event is not None and cancel_event.is_set()

        debug_log(f"Running on {len(members)} host(s) of {resolved.name}: {command}")

        if members:
            with ThreadPoolExecutor(max_workers=min(max_concurrency, len(members))) as executor:
                while True:
                    while pending and len(in_flight) < max_concurrency and not cancelled():
                        index, member = pending.popleft()
                        debug_log(f"Dispatching {member}")
                        future = executor.submit(
                            self._run_host, resolved, member, command, per_host_timeout
                        )
                        in_flight[future] = index
                    if not in_flight:
                        break
                    done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                    for future in done:
                        index = in_flight.pop(future)
                        results[index] = future.result()

        for index, member in pending:
            results[index] = ExecutionResult(
                host=member.access_name,
                user=member.user,
                state=HostState.NOT_DISPATCHED,
                error='Run cancelled before dispatch',
            )

        report = ExecutionReport(group=resolved.name, command=command, results=tuple(results))
        debug_log(
            f"Finished {resolved.name}: {report.succeeded} succeeded, {report.failed} failed, "
            f"{report.not_dispatched} not dispatched"
        )
        return report

    def _run_host(
        self,
        resolved: ResolvedGroup,
        member: GroupMembership,
        command: str,
        timeout: float,
    ) -> ExecutionResult:
        """Verify then execute on one host; every outcome becomes a result"""
        host = member.access_name
        start_time = self._clock()

        def finish(state: HostState, **kwargs) -> ExecutionResult:
            duration_ms = int((self._clock() - start_time) * 1000)
            return ExecutionResult(host=host, user=member.user, state=state, duration_ms=duration_ms, **kwargs)

        expected_key = resolved.known_hosts.get(host)
        if not expected_key:
            return finish(
                HostState.FAILED,
                reason=FailureReason.HOST_KEY_UNKNOWN,
                error=f"No trusted host key for {host}",
            )

        try:
            self.remote.verify_host_key(host, expected_key, timeout)
            remaining = timeout - (self._clock() - start_time)
            if remaining <= 0:
                raise CommandTimeout(host, 'timed out during host key verification')
            output = self.remote.execute(resolved.admin_user, member, command, remaining, expected_key)
        except CommandTimeout as e:
            return finish(HostState.TIMED_OUT, error=str(e))
        except RemoteError as e:
            return finish(HostState.FAILED, reason=_reason_for(e), error=str(e))
        except Exception as e:
            return finish(HostState.FAILED, reason=FailureReason.CONNECTION_ERROR, error=f"Error: {e}")

        # A remote that overruns without raising still counts as timed out
        if self._clock() - start_time > timeout:
            return finish(
                HostState.TIMED_OUT,
                exit_status=output.exit_status,
                stdout=output.stdout,
                stderr=output.stderr,
                error=f"Command did not finish within {timeout}s",
            )

        if output.exit_status != 0:
            return finish(
                HostState.FAILED,
                reason=FailureReason.NON_ZERO_EXIT,
                exit_status=output.exit_status,
                stdout=output.stdout,
                stderr=output.stderr,
                error=f"Command exited with status {output.exit_status}",
            )

        return finish(
            HostState.SUCCEEDED,
            exit_status=output.exit_status,
            stdout=output.stdout,
            stderr=output.stderr,
        )

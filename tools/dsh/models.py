"""
Data model shared by resolution and execution

All values are immutable; a resolution run always produces new instances.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Membership:
    """Local account a node uses as a group member"""
    user: Optional[str]
    access_name: Optional[str]


@dataclass(frozen=True)
class AdminMembership:
    """Key (and account name) a node publishes as a group admin"""
    pubkey: Optional[str]
    admin_user: Optional[str] = None


@dataclass(frozen=True)
class NodeRecord:
    """One machine/account entry returned by the directory"""
    name: str
    group_memberships: Mapping[str, Membership] = field(default_factory=dict)
    admin_memberships: Mapping[str, AdminMembership] = field(default_factory=dict)
    host_key: Optional[str] = None
    environment: Optional[str] = None


@dataclass(frozen=True)
class GroupSpec:
    """
    Local declaration of a group this host takes part in

    user is the member account that receives admin keys, admin_user is set when
    this host administers the group.
    """
    name: str
    user: Optional[str] = None
    admin_user: Optional[str] = None
    access_name: Optional[str] = None
    environment: Optional[str] = None


@dataclass(frozen=True)
class GroupMembership:
    group: str
    user: str
    access_name: str

    def __str__(self) -> str:
        return f"{self.user}@{self.access_name}"


@dataclass(frozen=True)
class AuthorizedKeySet:
    keys: Tuple[str, ...] = ()

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys)

    def __len__(self) -> int:
        return len(self.keys)

    def __contains__(self, key: object) -> bool:
        return key in self.keys

    def render(self) -> str:
        return "\n".join(self.keys)


@dataclass(frozen=True)
class KnownHostEntry:
    access_name: str
    host_key: str


@dataclass(frozen=True)
class KnownHostsTable:
    entries: Tuple[KnownHostEntry, ...] = ()

    def __iter__(self) -> Iterator[KnownHostEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, access_name: str) -> Optional[str]:
        """Host key trusted for access_name, if any"""
        for entry in self.entries:
            if entry.access_name == access_name:
                return entry.host_key
        return None


@dataclass(frozen=True)
class ResolvedGroup:
    """Snapshot of one group resolution"""
    name: str
    admin_user: Optional[str]
    authorized_keys: AuthorizedKeySet
    known_hosts: KnownHostsTable
    members: Tuple[GroupMembership, ...]
    user: Optional[str] = None
    access_name: Optional[str] = None
    host_key: Optional[str] = None
    admin_pubkey: Optional[str] = None
    admin_keys: Tuple[str, ...] = ()


class HostState(str, Enum):
    PENDING = 'pending'
    DISPATCHED = 'dispatched'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    TIMED_OUT = 'timed_out'
    NOT_DISPATCHED = 'not_dispatched'


class FailureReason(str, Enum):
    CONNECTION_REFUSED = 'connection_refused'
    AUTHENTICATION_FAILED = 'authentication_failed'
    NON_ZERO_EXIT = 'non_zero_exit'
    HOST_KEY_MISMATCH = 'host_key_mismatch'
    HOST_KEY_UNKNOWN = 'host_key_unknown'
    CONNECTION_ERROR = 'connection_error'


@dataclass(frozen=True)
class CommandOutput:
    exit_status: int
    stdout: str
    stderr: str


@dataclass(frozen=True)
class ExecutionResult:
    host: str
    user: str
    state: HostState
    reason: Optional[FailureReason] = None
    exit_status: Optional[int] = None
    stdout: str = ''
    stderr: str = ''
    duration_ms: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state == HostState.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'server': self.host,
            'user': self.user,
            'success': self.success,
            'state': self.state.value,
            'reason': self.reason.value if self.reason else None,
            'stdout': self.stdout,
            'stderr': self.stderr,
            'exit_code': self.exit_status,
            'duration_ms': self.duration_ms,
            'error': self.error,
        }


@dataclass(frozen=True)
class ExecutionReport:
    """Outcome of one command run, results in dispatch order"""
    group: str
    command: str
    results: Tuple[ExecutionResult, ...] = ()

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def attempted(self) -> int:
        return sum(1 for r in self.results if r.state != HostState.NOT_DISPATCHED)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.state in (HostState.FAILED, HostState.TIMED_OUT))

    @property
    def timed_out(self) -> int:
        return sum(1 for r in self.results if r.state == HostState.TIMED_OUT)

    @property
    def not_dispatched(self) -> int:
        return self.total - self.attempted

    def by_host(self) -> Dict[str, ExecutionResult]:
        return {r.host: r for r in self.results}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'group': self.group,
            'command': self.command,
            'results': [r.to_dict() for r in self.results],
            'summary': {
                'total': self.total,
                'attempted': self.attempted,
                'succeeded': self.succeeded,
                'failed': self.failed,
                'timed_out': self.timed_out,
                'not_dispatched': self.not_dispatched,
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

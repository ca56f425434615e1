"""
DSH Tool - Group Membership and Fan-out Execution

This tool resolves dsh group membership through the node directory, distributes
the SSH trust material a group's admin account needs, and runs a command on
every member host in parallel with aggregated results.

Example:
    from tools.dsh import resolve_group, execute_command

    # Merge admin keys, write known_hosts and the group file
    resolved = resolve_group("web", user="deploy", admin_user="dshadmin")

    # Run a command on every member of the group
    result = execute_command("web", "uptime", admin_user="dshadmin")
"""

import getpass
from typing import Optional

from .config import get_config, set_config, reset_config, get_command_timeout, get_max_concurrency
from .directory import DirectoryClient
from .errors import (
    DshError,
    DirectoryUnavailable,
    DirectoryQueryError,
    FileAccessError,
    ConfigurationError,
    HostKeyMismatch,
    ConnectionRefused,
    AuthenticationFailed,
    RemoteConnectionError,
    CommandTimeout,
)
from .executor import ParallelExecutor
from .files import AccountFiles
from .group_file import render_group_file
from .keys import merge_keys
from .known_hosts import build_known_hosts, render_known_hosts
from .models import (
    GroupSpec,
    NodeRecord,
    ResolvedGroup,
    ExecutionReport,
    ExecutionResult,
    HostState,
    FailureReason,
)
from .remote import ParamikoRemote
from .resolver import GroupResolver, load_resolved_group, published_attributes


def resolve_group(
    name: str,
    user: Optional[str] = None,
    admin_user: Optional[str] = None,
    access_name: Optional[str] = None,
    environment: Optional[str] = None,
    publish_as: Optional[str] = None,
) -> ResolvedGroup:
    """
    Resolve a group with the configured directory and local files.

    Args:
        name: Group name
        user: Local member account that receives the admin keys
        admin_user: Local admin account, when this host administers the group
        access_name: Name members use for this host (defaults to DSH_ACCESS_NAME)
        environment: Environment scope (defaults to DSH_ENVIRONMENT)
        publish_as: When set, publish the result under this node name

    Returns:
        The ResolvedGroup snapshot
    """
    resolver = GroupResolver()
    resolved = resolver.resolve(GroupSpec(name, user, admin_user, access_name, environment))
    if publish_as:
        resolver.publish(resolved, publish_as)
    return resolved


def execute_command(group: str, command: str, admin_user: Optional[str] = None) -> str:
    """
    Execute a command on all members of a group in parallel.

    Members and trusted host keys come from the admin account's group file and
    known_hosts written by the last resolution.

    Args:
        group: Group name
        command: The shell command to execute on member hosts
        admin_user: Admin account (defaults to the account running this process)

    Returns:
        JSON string with per-host results and summary

    Example:
        result = execute_command("web", "df -h", admin_user="dshadmin")
        data = json.loads(result)
        for host_result in data['results']:
            print(f"{host_result['server']}: {host_result['state']}")
    """
    admin_user = admin_user or getpass.getuser()
    files = AccountFiles()
    resolved = load_resolved_group(files, group, admin_user)
    executor = ParallelExecutor(
        ParamikoRemote(files),
        max_concurrency=get_max_concurrency(),
        per_host_timeout=get_command_timeout(),
    )
    return executor.run(resolved, command).to_json()


__all__ = [
    # Configuration
    'get_config',
    'set_config',
    'reset_config',

    # Functions
    'resolve_group',
    'execute_command',
    'merge_keys',
    'build_known_hosts',
    'render_known_hosts',
    'render_group_file',
    'load_resolved_group',
    'published_attributes',

    # Components
    'DirectoryClient',
    'AccountFiles',
    'GroupResolver',
    'ParallelExecutor',
    'ParamikoRemote',

    # Types
    'GroupSpec',
    'NodeRecord',
    'ResolvedGroup',
    'ExecutionReport',
    'ExecutionResult',
    'HostState',
    'FailureReason',

    # Errors
    'DshError',
    'DirectoryUnavailable',
    'DirectoryQueryError',
    'FileAccessError',
    'ConfigurationError',
    'HostKeyMismatch',
    'ConnectionRefused',
    'AuthenticationFailed',
    'RemoteConnectionError',
    'CommandTimeout',
]

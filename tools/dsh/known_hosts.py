"""
Known hosts table for a group admin account
"""

from typing import Dict, Iterable, Optional

from .config import debug_log
from .errors import ConfigurationError
from .models import KnownHostEntry, KnownHostsTable, NodeRecord


def build_known_hosts(
    members: Iterable[NodeRecord],
    group: str,
    self_access_name: str,
    self_host_key: Optional[str],
) -> KnownHostsTable:
    """
    Build the known hosts table for group

    Members without an access name or a host key are skipped. The local entry
    is always last; when two entries share an access name the later one wins.

    Raises:
        ConfigurationError: If the local host key or access name is missing
    """
    if not self_access_name or not self_host_key:
        raise ConfigurationError(group, 'local access name and host key are required for known hosts')

    table: Dict[str, str] = {}

    def add(access_name: str, host_key: str) -> None:
        if access_name in table:
            debug_log(f"Known host {access_name} listed more than once, keeping the later key")
            del table[access_name]
        table[access_name] = host_key

    for node in members:
        membership = node.group_memberships.get(group)
        if membership is None or not membership.access_name:
            debug_log(f"Skipping {node.name} in known hosts: no access name for group {group}")
            continue
        if not node.host_key:
            debug_log(f"Skipping {node.name} in known hosts: no host key published")
            continue
        add(membership.access_name, node.host_key.strip())

    add(self_access_name, self_host_key.strip())

    return KnownHostsTable(tuple(KnownHostEntry(name, key) for name, key in table.items()))


def render_known_hosts(table: KnownHostsTable) -> str:
    return "".join(f"{entry.access_name} {entry.host_key}\n" for entry in table)


def parse_known_hosts(text: str) -> KnownHostsTable:
    """Read back a rendered known_hosts file, later duplicates win"""
    table: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        access_name, _, host_key = line.partition(' ')
        if not host_key:
            continue
        table.pop(access_name, None)
        table[access_name] = host_key.strip()
    return KnownHostsTable(tuple(KnownHostEntry(name, key) for name, key in table.items()))

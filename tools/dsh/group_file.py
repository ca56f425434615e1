"""
Group file rendering (one user@host line per member)
"""

from typing import Iterable, List

from .config import debug_log
from .errors import DirectoryQueryError
from .models import GroupMembership, NodeRecord


def group_memberships(members: Iterable[NodeRecord], group: str) -> List[GroupMembership]:
    """
    Memberships of group in directory order, repeats included

    Raises:
        DirectoryQueryError: A node lists the group without a user or access name
    """
    memberships = []
    for node in members:
        membership = node.group_memberships.get(group)
        if membership is None:
            continue
        if not membership.user or not membership.access_name:
            raise DirectoryQueryError(
                f"dsh_groups:{group}",
                f"node {node.name} has an incomplete membership "
                f"(user={membership.user!r}, access_name={membership.access_name!r})",
                group=group,
            )
        memberships.append(GroupMembership(group, membership.user, membership.access_name))
    return memberships


def render_group_file(members: Iterable[NodeRecord], group: str) -> str:
    return render_memberships(group_memberships(members, group))


def render_memberships(memberships: Iterable[GroupMembership]) -> str:
    return "".join(f"{membership}\n" for membership in memberships)


def parse_group_file(text: str, group: str) -> List[GroupMembership]:
    """Read back a group file; lines without a user are ignored"""
    memberships = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        user, sep, access_name = line.rpartition('@')
        if not sep or not user or not access_name:
            debug_log(f"Ignoring malformed group file line: {line}")
            continue
        memberships.append(GroupMembership(group, user, access_name))
    return memberships

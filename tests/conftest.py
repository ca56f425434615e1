from typing import Dict, List, Optional

import pytest

from tools.dsh import config
from tools.dsh.errors import DirectoryUnavailable
from tools.dsh.files import AccountFiles
from tools.dsh.models import AdminMembership, Membership, NodeRecord


def member_node(
    name: str,
    group: str,
    user: Optional[str],
    access_name: Optional[str],
    host_key: Optional[str] = None,
) -> NodeRecord:
    return NodeRecord(
        name=name,
        group_memberships={group: Membership(user=user, access_name=access_name)},
        host_key=host_key,
    )


def admin_node(name: str, group: str, pubkey: Optional[str], admin_user: Optional[str] = None) -> NodeRecord:
    return NodeRecord(
        name=name,
        admin_memberships={group: AdminMembership(pubkey=pubkey, admin_user=admin_user)},
    )


class FakeDirectory:
    """In-memory directory keyed by group name"""

    def __init__(self):
        self.members: Dict[str, List[NodeRecord]] = {}
        self.admins: Dict[str, List[NodeRecord]] = {}
        self.unavailable: Dict[str, str] = {}
        self.published: List[tuple] = []
        self.queries: List[tuple] = []

    def _query(self, kind: str, group: str, environment: Optional[str]) -> List[NodeRecord]:
        self.queries.append((kind, group, environment))
        if self.unavailable.get(group) == kind:
            raise DirectoryUnavailable(f"dsh_{kind}:{group}", 'connection refused', group=group)
        source = self.members if kind == 'groups' else self.admins
        return list(source.get(group, []))

    def find_members(self, group, environment=None):
        return self._query('groups', group, environment)

    def find_admins(self, group, environment=None):
        return self._query('admin_groups', group, environment)

    def publish(self, node_name, attributes):
        self.published.append((node_name, attributes))


@pytest.fixture(autouse=True)
def clean_config():
    """Every test starts and ends with configuration from the environment."""
    config.reset_config()
    yield
    config.reset_config()


@pytest.fixture
def home_root(tmp_path):
    root = tmp_path / "home"
    root.mkdir()
    return root


@pytest.fixture
def files(home_root) -> AccountFiles:
    """Account files rooted in a temporary directory, one home per account."""
    return AccountFiles(home_resolver=lambda user: str(home_root / user))


@pytest.fixture
def host_key_path(tmp_path):
    path = tmp_path / "ssh_host_rsa_key.pub"
    path.write_text("hostpubkey\n", encoding="utf-8")
    return str(path)


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()

"""
Typed query interface over the node directory

Example:
    from tools.dsh.directory import DirectoryClient

    client = DirectoryClient()
    members = client.find_members('web', 'production')
    admins = client.find_admins('web', 'production')
"""

from typing import Any, Callable, Dict, List, Optional

from .config import debug_log, get_environment
from .errors import DirectoryQueryError, DirectoryUnavailable
from .models import AdminMembership, Membership, NodeRecord
from .types import DshAttributes, NodeDocument, NodePublishParams, NodeSearchParams
from .utils import directory_request


MEMBER_FIELD = 'dsh_groups'
ADMIN_FIELD = 'dsh_admin_groups'


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_node(document: NodeDocument) -> NodeRecord:
    """Convert a node document into a NodeRecord"""
    if not isinstance(document, dict) or not document.get('name'):
        raise ValueError(f"Node document without a name: {document!r}")

    dsh: DshAttributes = document.get('dsh') or {}

    group_memberships = {
        group: Membership(user=_text(attrs.get('user')), access_name=_text(attrs.get('access_name')))
        for group, attrs in (dsh.get('groups') or {}).items()
        if isinstance(attrs, dict)
    }
    admin_memberships = {
        group: AdminMembership(pubkey=_text(attrs.get('pubkey')), admin_user=_text(attrs.get('admin_user')))
        for group, attrs in (dsh.get('admin_groups') or {}).items()
        if isinstance(attrs, dict)
    }

    return NodeRecord(
        name=document['name'],
        group_memberships=group_memberships,
        admin_memberships=admin_memberships,
        host_key=_text(dsh.get('host_key')),
        environment=document.get('environment'),
    )


class DirectoryClient:
    """
    Read-only queries for group members and admins, plus the publish side channel

    Args:
        request: Callable performing one API call, defaults to directory_request
        environment: Default environment scope, defaults to DSH_ENVIRONMENT
    """

    def __init__(
        self,
        request: Callable[[str, Any], Any] = directory_request,
        environment: Optional[str] = None,
    ):
        self._request = request
        self._environment = environment

    def find_members(self, group: str, environment: Optional[str] = None) -> List[NodeRecord]:
        """Nodes that are members of group in the given environment"""
        return self._search(MEMBER_FIELD, group, environment)

    def find_admins(self, group: str, environment: Optional[str] = None) -> List[NodeRecord]:
        """Nodes that administer group in the given environment"""
        return self._search(ADMIN_FIELD, group, environment)

    def publish(self, node_name: str, attributes: Dict[str, DshAttributes]) -> None:
        """Advertise derived attributes for node_name back into the directory"""
        query = f"publish {node_name}"
        params: NodePublishParams = {'name': node_name, 'attributes': attributes}
        try:
            self._request('node.publish', params)
        except DirectoryUnavailable as exc:
            raise DirectoryUnavailable(query, exc.reason) from exc
        debug_log(f"Published attributes for {node_name}")

    def _search(self, field: str, group: str, environment: Optional[str]) -> List[NodeRecord]:
        environment = environment or self._environment or get_environment()
        query = f"{field}:{group} AND environment:{environment}"
        params: NodeSearchParams = {
            'index': 'node',
            'query': {field: group, 'environment': environment},
        }

        try:
            documents = self._request('node.search', params)
        except DirectoryUnavailable as exc:
            raise DirectoryUnavailable(query, exc.reason, group=group) from exc
        except DirectoryQueryError as exc:
            raise DirectoryQueryError(query, exc.reason, group=group, code=exc.code) from exc

        if documents is None:
            return []
        if not isinstance(documents, list):
            raise DirectoryQueryError(query, f"Expected a list of nodes, got {type(documents).__name__}", group=group)

        records = []
        for document in documents:
            try:
                record = parse_node(document)
            except ValueError as exc:
                raise DirectoryQueryError(query, str(exc), group=group) from exc
            if record.environment is not None and record.environment != environment:
                debug_log(f"Dropping {record.name}: environment {record.environment} != {environment}")
                continue
            records.append(record)

        debug_log(f"{query} returned {len(records)} node(s)")
        return records

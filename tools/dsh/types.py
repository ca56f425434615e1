"""
Wire type definitions for the node directory

Node documents follow the attribute layout that group members and admins
publish about themselves.
"""

from typing import TypedDict, Dict, List


class GroupAttributes(TypedDict, total=False):
    """Member side attributes of one group"""
    user: str
    access_name: str
    authorized_keys: List[str]


class AdminGroupAttributes(TypedDict, total=False):
    """Admin side attributes of one group"""
    pubkey: str
    admin_user: str


class KnownHostAttributes(TypedDict):
    name: str
    key: str


class DshAttributes(TypedDict, total=False):
    host_key: str
    groups: Dict[str, GroupAttributes]
    admin_groups: Dict[str, AdminGroupAttributes]
    hosts: List[KnownHostAttributes]


class NodeDocument(TypedDict, total=False):
    """A node as returned by node.search"""
    name: str
    environment: str
    dsh: DshAttributes


class NodeSearchQuery(TypedDict, total=False):
    dsh_groups: str
    dsh_admin_groups: str
    environment: str


class NodeSearchParams(TypedDict):
    """Parameters for the node.search API method"""
    index: str
    query: NodeSearchQuery


class NodePublishParams(TypedDict):
    """Parameters for the node.publish API method"""
    name: str
    attributes: Dict[str, DshAttributes]

"""
Group resolution

Queries the directory for a group's admins and members, merges admin keys into
the member account, writes the admin account's known hosts and group file, and
returns a ResolvedGroup snapshot.

Example:
    from tools.dsh.resolver import GroupResolver
    from tools.dsh.models import GroupSpec

    resolver = GroupResolver()
    resolved = resolver.resolve(GroupSpec('web', user='deploy', admin_user='dshadmin'))
    resolver.publish(resolved, 'web-01')
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Tuple

from .config import debug_log, get_access_name, get_host_key_path
from .directory import DirectoryClient
from .errors import ConfigurationError, DshError
from .files import GROUP_FILE_MODE, AccountFiles
from .group_file import group_memberships, parse_group_file, render_memberships
from .keys import merge_keys, split_keys
from .known_hosts import build_known_hosts, parse_known_hosts, render_known_hosts
from .models import (
    AuthorizedKeySet,
    GroupSpec,
    KnownHostsTable,
    NodeRecord,
    ResolvedGroup,
)
from .types import DshAttributes


def _admin_keys(admins: Iterable[NodeRecord], group: str) -> List[str]:
    """One pubkey per admin node, in directory order"""
    keys = []
    for node in admins:
        membership = node.admin_memberships.get(group)
        if membership is None or not membership.pubkey:
            debug_log(f"Admin {node.name} publishes no pubkey for {group}")
            continue
        keys.append(membership.pubkey)
    return keys


def _admin_user(spec: GroupSpec, admins: Iterable[NodeRecord]) -> Optional[str]:
    if spec.admin_user:
        return spec.admin_user
    for node in admins:
        membership = node.admin_memberships.get(spec.name)
        if membership is not None and membership.admin_user:
            return membership.admin_user
    return None


class GroupResolver:
    """
    Resolve groups against the directory

    Args:
        directory: Directory client, defaults to one built from configuration
        files: Account file access, shared by concurrent resolutions
        host_key_path: Local host public key, defaults to DSH_HOST_KEY_PATH
        access_name: Name members use for this host, defaults to DSH_ACCESS_NAME
    """

    def __init__(
        self,
        directory: Optional[DirectoryClient] = None,
        files: Optional[AccountFiles] = None,
        host_key_path: Optional[str] = None,
        access_name: Optional[str] = None,
    ):
        self.directory = directory or DirectoryClient()
        self.files = files or AccountFiles()
        self._host_key_path = host_key_path
        self._access_name = access_name

    def resolve(self, spec: GroupSpec) -> ResolvedGroup:
        """
        Resolve one group

        Raises:
            DirectoryUnavailable, DirectoryQueryError: A directory query failed
            ConfigurationError: Admins exist but no admin account can be named
            FileAccessError: A credential file could not be read or written
        """
        group = spec.name
        debug_log(f"Resolving group {group}")

        # Both queries run before anything is written
        admins = self.directory.find_admins(group, spec.environment)
        members = self.directory.find_members(group, spec.environment)

        admin_user = _admin_user(spec, admins)
        if admins and not admin_user:
            raise ConfigurationError(
                group, f"{len(admins)} admin node(s) found but no admin account is declared or published"
            )

        host_key = self.files.read_host_key(self._host_key_path or get_host_key_path())
        access_name = spec.access_name or self._access_name or get_access_name()

        # Everything derived from the directory is built before any file is written
        known_hosts = build_known_hosts(members, group, access_name, host_key)
        memberships = group_memberships(members, group)
        admin_keys = _admin_keys(admins, group)

        authorized_keys = AuthorizedKeySet()
        if spec.user:
            authorized_keys = self._merge_authorized_keys(spec.user, admin_keys)

        admin_pubkey = None
        if spec.admin_user:
            self._write_admin_files(spec.admin_user, group, known_hosts, render_memberships(memberships))
            admin_pubkey = self.files.read_public_key(spec.admin_user)

        debug_log(
            f"Resolved group {group}: {len(memberships)} member(s), "
            f"{len(known_hosts)} known host(s), {len(admin_keys)} admin key(s)"
        )

        return ResolvedGroup(
            name=group,
            admin_user=admin_user,
            authorized_keys=authorized_keys,
            known_hosts=known_hosts,
            members=tuple(memberships),
            user=spec.user,
            access_name=access_name,
            host_key=host_key,
            admin_pubkey=admin_pubkey,
            admin_keys=tuple(admin_keys),
        )

    def resolve_all(
        self,
        specs: Iterable[GroupSpec],
        max_workers: Optional[int] = None,
    ) -> Tuple[Dict[str, ResolvedGroup], Dict[str, DshError]]:
        """
        Resolve independent groups concurrently

        Returns:
            (resolved groups by name, errors by name); one group failing does
            not affect the others

        Raises:
            ValueError: If the same group name appears more than once
        """
        specs = list(specs)
        names = [spec.name for spec in specs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Groups declared more than once: {', '.join(duplicates)}")
        resolved: Dict[str, ResolvedGroup] = {}
        errors: Dict[str, DshError] = {}
        if not specs:
            return resolved, errors

        with ThreadPoolExecutor(max_workers=max_workers or min(len(specs), 10)) as executor:
            futures = {executor.submit(self.resolve, spec): spec.name for spec in specs}
            for future, name in futures.items():
                try:
                    resolved[name] = future.result()
                except DshError as e:
                    debug_log(f"Group {name} failed: {e}")
                    errors[name] = e

        return resolved, errors

    def publish(self, resolved: ResolvedGroup, node_name: str) -> None:
        """Advertise the resolution back into the directory"""
        self.directory.publish(node_name, published_attributes(resolved))

    def _merge_authorized_keys(self, user: str, admin_keys: List[str]) -> AuthorizedKeySet:
        path = self.files.authorized_keys_path(user)
        with self.files.account_lock(user):
            existing = self.files.read_text(path)
            merged = merge_keys(existing, [])
            for key in admin_keys:
                merged = merge_keys(merged, [key])
            if merged != existing or not path.exists():
                self.files.write_atomic(path, merged)
            else:
                debug_log(f"{path} already up to date")
        return AuthorizedKeySet(tuple(split_keys(merged)))

    def _write_admin_files(self, admin_user: str, group: str, known_hosts: KnownHostsTable, group_text: str) -> None:
        with self.files.account_lock(admin_user):
            self.files.write_atomic(self.files.known_hosts_path(admin_user), render_known_hosts(known_hosts))
            self.files.write_atomic(
                self.files.group_file_path(admin_user, group), group_text, mode=GROUP_FILE_MODE
            )


def published_attributes(resolved: ResolvedGroup) -> Dict[str, DshAttributes]:
    """Attributes other nodes read to discover this node's part in the group"""
    dsh: DshAttributes = {
        'hosts': [{'name': entry.access_name, 'key': entry.host_key} for entry in resolved.known_hosts],
    }
    if resolved.host_key:
        dsh['host_key'] = resolved.host_key

    if resolved.user:
        keys = list(resolved.admin_keys)
        if resolved.admin_pubkey and resolved.admin_pubkey not in keys:
            keys.append(resolved.admin_pubkey)
        dsh['groups'] = {
            resolved.name: {
                'user': resolved.user,
                'access_name': resolved.access_name or '',
                'authorized_keys': keys,
            }
        }

    if resolved.admin_user:
        admin_attrs = {'admin_user': resolved.admin_user}
        if resolved.admin_pubkey:
            admin_attrs['pubkey'] = resolved.admin_pubkey
        dsh['admin_groups'] = {resolved.name: admin_attrs}

    return {'dsh': dsh}


def load_resolved_group(files: AccountFiles, group: str, admin_user: str) -> ResolvedGroup:
    """
    Rebuild a ResolvedGroup from the admin account's persisted files

    Raises:
        FileAccessError: If the group file does not exist
    """
    group_text = files.read_text(files.group_file_path(admin_user, group), missing_ok=False)
    known_hosts = parse_known_hosts(files.read_text(files.known_hosts_path(admin_user)))
    return ResolvedGroup(
        name=group,
        admin_user=admin_user,
        authorized_keys=AuthorizedKeySet(),
        known_hosts=known_hosts,
        members=tuple(parse_group_file(group_text, group)),
    )

"""
Per-account credential and group files

Paths:
    ~user/.ssh/authorized_keys
    ~user/.ssh/known_hosts
    ~user/.ssh/id_rsa, ~user/.ssh/id_rsa.pub
    ~user/.dsh/group/<group>
"""

import fcntl
import os
import stat
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional

from .config import debug_log
from .errors import FileAccessError


CREDENTIAL_MODE = stat.S_IRUSR | stat.S_IWUSR
GROUP_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP | stat.S_IROTH
DIRECTORY_MODE = stat.S_IRWXU


class AccountFiles:
    """
    File access for account home directories

    Args:
        home_resolver: Maps an account name to its home directory. Defaults to
            expanding ~user, which fails for accounts that do not exist.
    """

    def __init__(self, home_resolver: Optional[Callable[[str], str]] = None):
        self._home_resolver = home_resolver or self._expand_home
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @staticmethod
    def _expand_home(user: str) -> str:
        home = os.path.expanduser(f"~{user}")
        if home.startswith('~'):
            raise FileAccessError(f"~{user}", 'no such account')
        return home

    def home(self, user: str) -> Path:
        return Path(self._home_resolver(user))

    def authorized_keys_path(self, user: str) -> Path:
        return self.home(user) / '.ssh' / 'authorized_keys'

    def known_hosts_path(self, user: str) -> Path:
        return self.home(user) / '.ssh' / 'known_hosts'

    def private_key_path(self, user: str) -> Path:
        return self.home(user) / '.ssh' / 'id_rsa'

    def public_key_path(self, user: str) -> Path:
        return self.home(user) / '.ssh' / 'id_rsa.pub'

    def group_file_path(self, user: str, group: str) -> Path:
        if not group or '/' in group or group in ('.', '..'):
            raise FileAccessError(group, 'invalid group name for a group file')
        return self.home(user) / '.dsh' / 'group' / group

    def read_text(self, path: Path, missing_ok: bool = True) -> str:
        """Read a UTF-8 file; a missing file reads as empty when missing_ok"""
        try:
            return Path(path).read_text(encoding='utf-8')
        except FileNotFoundError:
            if missing_ok:
                return ''
            raise FileAccessError(str(path), 'file does not exist')
        except (OSError, UnicodeDecodeError) as e:
            raise FileAccessError(str(path), str(e))

    def write_atomic(self, path: Path, content: str, mode: int = CREDENTIAL_MODE) -> None:
        """
        Replace path with content

        The data goes to a temporary file in the same directory which is then
        renamed over the target, so readers never see a partial file.
        """
        path = Path(path)
        try:
            path.parent.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f'.{path.name}.', dir=str(path.parent))
        except OSError as e:
            raise FileAccessError(str(path), str(e))

        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise FileAccessError(str(path), str(e))

        debug_log(f"Wrote {path}")

    @contextmanager
    def account_lock(self, user: str) -> Iterator[None]:
        """
        Exclusive lock over an account's credential files

        Serializes threads of this process and, through flock on
        ~user/.ssh/.dsh.lock, other processes.
        """
        with self._locks_guard:
            lock = self._locks.setdefault(user, threading.Lock())

        lock_path = self.home(user) / '.ssh' / '.dsh.lock'
        with lock:
            try:
                lock_path.parent.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
                handle = open(lock_path, 'a')
            except OSError as e:
                raise FileAccessError(str(lock_path), str(e))
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
                handle.close()

    def read_public_key(self, user: str) -> Optional[str]:
        """The account's own public key, if it has one"""
        key = self.read_text(self.public_key_path(user)).strip()
        return key or None

    def read_host_key(self, path: str) -> str:
        """The local SSH host public key"""
        key = self.read_text(Path(path), missing_ok=False).strip()
        if not key:
            raise FileAccessError(path, 'host key file is empty')
        return key

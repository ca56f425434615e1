"""
Remote execution over SSH

Host key verification is a separate step with its own result, so a command is
never attempted against a host whose key does not match the trusted one.

Example:
    from tools.dsh.remote import ParamikoRemote

    remote = ParamikoRemote()
    remote.verify_host_key('web-01', 'ssh-ed25519 AAAA...', timeout=10)
"""

import socket
import threading
from pathlib import Path
from typing import Optional

import paramiko
from paramiko.hostkeys import HostKeyEntry, InvalidHostKey
from paramiko.ssh_exception import NoValidConnectionsError

from .config import debug_log, get_connection_timeout, get_ssh_port
from .errors import (
    AuthenticationFailed,
    CommandTimeout,
    ConnectionRefused,
    HostKeyMismatch,
    RemoteConnectionError,
    RemoteError,
)
from .files import AccountFiles
from .models import CommandOutput, GroupMembership


def _parse_host_key(host: str, host_key: str) -> paramiko.PKey:
    """Parse a 'type base64 [comment]' host key"""
    try:
        entry = HostKeyEntry.from_line(f"{host} {host_key}")
    except (InvalidHostKey, paramiko.SSHException, ValueError) as e:
        raise HostKeyMismatch(host, f"trusted host key cannot be parsed: {e}")
    if entry is None or entry.key is None:
        raise HostKeyMismatch(host, 'trusted host key has an unsupported type')
    return entry.key


def _load_private_key(key_path: Path) -> paramiko.PKey:
    """Load private key from file, trying different key types"""
    key_types = [
        paramiko.RSAKey,
        paramiko.Ed25519Key,
        paramiko.ECDSAKey,
    ]
    # DSSKey was removed in paramiko 4.x
    if hasattr(paramiko, 'DSSKey'):
        key_types.append(paramiko.DSSKey)

    last_error = None
    for key_class in key_types:
        try:
            return key_class.from_private_key_file(str(key_path))
        except (paramiko.SSHException, ValueError) as e:
            last_error = e
        except OSError as e:
            raise AuthenticationFailed(str(key_path), f"Unable to read private key: {e}")

    raise AuthenticationFailed(str(key_path), f"Unable to load private key: {last_error}")


def _translate(host: str, error: BaseException, expired: threading.Event) -> RemoteError:
    """Map a paramiko or socket failure onto the remote error taxonomy"""
    if isinstance(error, RemoteError):
        return error
    if expired.is_set() or isinstance(error, socket.timeout):
        return CommandTimeout(host, f"timed out: {error}")
    if isinstance(error, paramiko.BadHostKeyException):
        return HostKeyMismatch(host, str(error))
    if isinstance(error, paramiko.AuthenticationException):
        return AuthenticationFailed(host, str(error))
    if isinstance(error, (NoValidConnectionsError, ConnectionRefusedError)):
        return ConnectionRefused(host, str(error))
    return RemoteConnectionError(host, f"SSH error: {error}")


class ParamikoRemote:
    """
    verify_host_key / execute pair used by the parallel executor

    Args:
        files: Locates the admin account's private key
        port: SSH port, defaults to DSH_SSH_PORT
        connection_timeout: Upper bound for connecting, defaults to DSH_CONNECTION_TIMEOUT
    """

    def __init__(
        self,
        files: Optional[AccountFiles] = None,
        port: Optional[int] = None,
        connection_timeout: Optional[float] = None,
    ):
        self.files = files or AccountFiles()
        self.port = port or get_ssh_port()
        self.connection_timeout = connection_timeout or get_connection_timeout()

    def _lookup_name(self, host: str) -> str:
        return host if self.port == 22 else f"[{host}]:{self.port}"

    def verify_host_key(self, host: str, expected_key: str, timeout: float) -> None:
        """
        Check the key host presents against expected_key

        Raises:
            HostKeyMismatch: The presented key differs
            ConnectionRefused, RemoteConnectionError, CommandTimeout: The key could not be fetched
        """
        trusted = _parse_host_key(host, expected_key)
        expired = threading.Event()
        transport = None
        try:
            sock = socket.create_connection((host, self.port), timeout=min(timeout, self.connection_timeout))
            transport = paramiko.Transport(sock)
            transport.start_client(timeout=timeout)
            presented = transport.get_remote_server_key()
        except Exception as e:
            raise _translate(host, e, expired) from e
        finally:
            if transport is not None:
                transport.close()

        if presented.asbytes() != trusted.asbytes():
            raise HostKeyMismatch(
                host,
                f"presented {presented.get_name()} key {presented.get_base64()[:16]}... "
                f"does not match the trusted key",
            )
        debug_log(f"Host key for {host} verified")

    def execute(
        self,
        as_user: str,
        member: GroupMembership,
        command: str,
        timeout: float,
        expected_key: str,
    ) -> CommandOutput:
        """
        Run command on member.access_name as member.user with as_user's key

        The client is closed from a timer once timeout elapses, which ends the
        remote command for this host only.

        Raises:
            CommandTimeout, ConnectionRefused, AuthenticationFailed,
            HostKeyMismatch, RemoteConnectionError
        """
        host = member.access_name
        trusted = _parse_host_key(host, expected_key)
        private_key = _load_private_key(self.files.private_key_path(as_user))

        client = paramiko.SSHClient()
        client.get_host_keys().add(self._lookup_name(host), trusted.get_name(), trusted)
        client.set_missing_host_key_policy(paramiko.RejectPolicy())

        expired = threading.Event()

        def expire() -> None:
            expired.set()
            client.close()

        timer = threading.Timer(timeout, expire)
        timer.daemon = True
        timer.start()
        try:
            debug_log(f"Connecting to {host}:{self.port} as {member.user}")
            client.connect(
                hostname=host,
                port=self.port,
                username=member.user,
                pkey=private_key,
                timeout=min(timeout, self.connection_timeout),
                banner_timeout=timeout,
                auth_timeout=timeout,
                allow_agent=False,
                look_for_keys=False,
            )

            debug_log(f"Connected to {host}, executing command: {command}")
            stdin, stdout, stderr = client.exec_command(command, timeout=timeout)
            stdin.close()
            stdout_text = stdout.read().decode('utf-8', errors='replace')
            stderr_text = stderr.read().decode('utf-8', errors='replace')
            exit_status = stdout.channel.recv_exit_status()
            if expired.is_set():
                raise CommandTimeout(host, f"command did not finish within {timeout}s")
        except Exception as e:
            raise _translate(host, e, expired) from e
        finally:
            timer.cancel()
            client.close()

        debug_log(f"Command completed on {host}: exit_code={exit_status}")
        return CommandOutput(exit_status=exit_status, stdout=stdout_text, stderr=stderr_text)

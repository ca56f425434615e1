import socket
import threading
from unittest.mock import MagicMock, patch

import paramiko
import pytest
from paramiko.ssh_exception import NoValidConnectionsError

from tools.dsh.errors import (
    AuthenticationFailed,
    CommandTimeout,
    ConnectionRefused,
    HostKeyMismatch,
    RemoteConnectionError,
)
from tools.dsh.models import GroupMembership
from tools.dsh.remote import ParamikoRemote, _translate


@pytest.fixture(scope="module")
def host_key():
    return paramiko.RSAKey.generate(2048)


@pytest.fixture(scope="module")
def impostor_key():
    return paramiko.RSAKey.generate(2048)


def key_line(key):
    return f"{key.get_name()} {key.get_base64()}"


@pytest.fixture
def remote(files):
    return ParamikoRemote(files=files, port=22, connection_timeout=5)


def _transport_presenting(key):
    transport = MagicMock()
    transport.get_remote_server_key.return_value = key
    return transport


def test_verify_accepts_trusted_key(remote, host_key):
    transport = _transport_presenting(host_key)
    with patch("tools.dsh.remote.socket.create_connection"), \
            patch("tools.dsh.remote.paramiko.Transport", return_value=transport):
        remote.verify_host_key("h1", key_line(host_key) + " root@h1", timeout=5)

    transport.close.assert_called_once()


def test_verify_rejects_other_key(remote, host_key, impostor_key):
    with patch("tools.dsh.remote.socket.create_connection"), \
            patch("tools.dsh.remote.paramiko.Transport", return_value=_transport_presenting(impostor_key)):
        with pytest.raises(HostKeyMismatch):
            remote.verify_host_key("h1", key_line(host_key), timeout=5)


def test_verify_rejects_unparsable_trusted_key(remote):
    with pytest.raises(HostKeyMismatch):
        remote.verify_host_key("h1", "memberhostkey", timeout=5)


def test_verify_connection_refused(remote, host_key):
    with patch("tools.dsh.remote.socket.create_connection", side_effect=ConnectionRefusedError()):
        with pytest.raises(ConnectionRefused):
            remote.verify_host_key("h1", key_line(host_key), timeout=5)


def test_verify_timeout(remote, host_key):
    with patch("tools.dsh.remote.socket.create_connection", side_effect=socket.timeout("timed out")):
        with pytest.raises(CommandTimeout):
            remote.verify_host_key("h1", key_line(host_key), timeout=5)


def _client(exit_status=0, stdout=b"ok\n", stderr=b""):
    client = MagicMock()
    out = MagicMock()
    out.read.return_value = stdout
    out.channel.recv_exit_status.return_value = exit_status
    err = MagicMock()
    err.read.return_value = stderr
    client.exec_command.return_value = (MagicMock(), out, err)
    return client


def test_execute_uses_trusted_key_and_member_account(remote, host_key):
    client = _client(exit_status=2, stderr=b"boom")
    member = GroupMembership("testing", "memberuser", "memberhost")

    with patch("tools.dsh.remote.paramiko.SSHClient", return_value=client), \
            patch("tools.dsh.remote._load_private_key", return_value="pkey") as load_key:
        output = remote.execute("admin", member, "uptime", 5, key_line(host_key))

    assert output.exit_status == 2
    assert output.stdout == "ok\n"
    assert output.stderr == "boom"
    load_key.assert_called_once_with(remote.files.private_key_path("admin"))
    added = client.get_host_keys.return_value.add.call_args[0]
    assert added[0] == "memberhost"
    assert added[2].asbytes() == host_key.asbytes()
    kwargs = client.connect.call_args[1]
    assert kwargs["hostname"] == "memberhost"
    assert kwargs["username"] == "memberuser"
    assert kwargs["pkey"] == "pkey"
    client.exec_command.assert_called_once_with("uptime", timeout=5)
    client.close.assert_called()


def test_execute_authentication_failure(remote, host_key):
    client = _client()
    client.connect.side_effect = paramiko.AuthenticationException("denied")
    member = GroupMembership("testing", "memberuser", "memberhost")

    with patch("tools.dsh.remote.paramiko.SSHClient", return_value=client), \
            patch("tools.dsh.remote._load_private_key", return_value="pkey"):
        with pytest.raises(AuthenticationFailed):
            remote.execute("admin", member, "uptime", 5, key_line(host_key))


def test_non_default_port_uses_bracketed_host_key_name(files, host_key):
    remote = ParamikoRemote(files=files, port=2222)
    client = _client()
    member = GroupMembership("testing", "memberuser", "memberhost")

    with patch("tools.dsh.remote.paramiko.SSHClient", return_value=client), \
            patch("tools.dsh.remote._load_private_key", return_value="pkey"):
        remote.execute("admin", member, "id", 5, key_line(host_key))

    assert client.get_host_keys.return_value.add.call_args[0][0] == "[memberhost]:2222"


def test_missing_private_key_is_authentication_failure(remote, host_key):
    member = GroupMembership("testing", "memberuser", "memberhost")

    with pytest.raises(AuthenticationFailed):
        remote.execute("admin", member, "id", 5, key_line(host_key))


@pytest.mark.parametrize(
    "error, expected",
    [
        (NoValidConnectionsError({("10.0.0.1", 22): ConnectionRefusedError()}), ConnectionRefused),
        (paramiko.BadHostKeyException("h", MagicMock(), MagicMock()), HostKeyMismatch),
        (paramiko.AuthenticationException("denied"), AuthenticationFailed),
        (socket.timeout("slow"), CommandTimeout),
        (paramiko.SSHException("banner"), RemoteConnectionError),
        (EOFError(), RemoteConnectionError),
    ],
)
def test_translate(error, expected):
    assert isinstance(_translate("h", error, threading.Event()), expected)


def test_translate_after_expiry_is_timeout():
    expired = threading.Event()
    expired.set()

    assert isinstance(_translate("h", EOFError(), expired), CommandTimeout)

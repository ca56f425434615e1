"""
DSH Tool Configuration

Configuration is loaded from environment variables, typically set via .env.dsh file
in the working directory or the tool's own config.env.

Environment Variables:
    DSH_DIRECTORY_URL: Base URL of the node directory (JSON-RPC endpoint)
    DSH_DIRECTORY_TOKEN: API token for the directory
    DSH_DIRECTORY_USER / DSH_DIRECTORY_PASSWORD: Credentials used when no token is set
    DSH_ENVIRONMENT: Deployment environment used to scope directory queries (default: _default)
    DSH_ACCESS_NAME: Name other hosts use to reach this host (default: fully qualified hostname)
    DSH_HOST_KEY_PATH: Local SSH host public key (default: /etc/ssh/ssh_host_rsa_key.pub)
    DSH_SSH_PORT: SSH port of member hosts (default: 22)
    DSH_MAX_CONCURRENCY: Hosts executing at once (default: 10)
    DSH_COMMAND_TIMEOUT: Per-host timeout in seconds (default: 30)
    DSH_CONNECTION_TIMEOUT: Connection timeout in seconds (default: 10)
    REQUEST_TIMEOUT: Directory request timeout in seconds (default: 30)
    VERIFY_SSL: Verify the directory TLS certificate (default: true)
    DSH_DEBUG: Enable debug logging (default: false)
"""

import os
import socket
from pathlib import Path
from typing import Any, Dict, Optional


def _load_env_file(file_path: Path) -> None:
    """Load environment variables from a .env file."""
    if not file_path.exists():
        return

    with file_path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, value = line.split("=", 1)
            os.environ.setdefault(key, value)


def _load_config_env():
    """
    Load environment variables from config files.

    Search order (first found wins for each variable):
    1. Current working directory .env.dsh
    2. Tool's own config.env (tool directory)
    """
    _load_env_file(Path.cwd() / ".env.dsh")
    _load_env_file(Path(__file__).parent / "config.env")


# Auto-load config.env when module is imported
_load_config_env()


class DshConfig:
    """DSH Tool configuration"""

    def __init__(self):
        self.directory_url: str = os.getenv('DSH_DIRECTORY_URL', '')
        self.directory_token: Optional[str] = os.getenv('DSH_DIRECTORY_TOKEN')
        self.directory_user: Optional[str] = os.getenv('DSH_DIRECTORY_USER')
        self.directory_password: Optional[str] = os.getenv('DSH_DIRECTORY_PASSWORD')
        self.environment: str = os.getenv('DSH_ENVIRONMENT', '_default')
        self.access_name: str = os.getenv('DSH_ACCESS_NAME', '')
        self.host_key_path: str = os.getenv('DSH_HOST_KEY_PATH', '/etc/ssh/ssh_host_rsa_key.pub')
        self.ssh_port: int = int(os.getenv('DSH_SSH_PORT', '22'))
        self.max_concurrency: int = int(os.getenv('DSH_MAX_CONCURRENCY', '10'))
        self.command_timeout: float = float(os.getenv('DSH_COMMAND_TIMEOUT', '30'))
        self.connection_timeout: float = float(os.getenv('DSH_CONNECTION_TIMEOUT', '10'))
        self.request_timeout: int = int(os.getenv('REQUEST_TIMEOUT', '30'))
        self.verify_ssl: bool = os.getenv('VERIFY_SSL', 'true').lower() == 'true'
        self.debug: bool = os.getenv('DSH_DEBUG', '').lower() == 'true'


# Global configuration instance
_config = DshConfig()

# Session token obtained through user.login
_auth_token: Optional[str] = None


def get_config() -> Dict[str, Any]:
    """Get current configuration (excluding sensitive data)"""
    return {
        'directory_url': _config.directory_url,
        'environment': _config.environment,
        'access_name': get_access_name(),
        'host_key_path': _config.host_key_path,
        'ssh_port': _config.ssh_port,
        'max_concurrency': _config.max_concurrency,
        'command_timeout': _config.command_timeout,
        'connection_timeout': _config.connection_timeout,
        'request_timeout': _config.request_timeout,
        'verify_ssl': _config.verify_ssl,
        'debug': _config.debug,
        'has_token': bool(_config.directory_token),
        'has_user': bool(_config.directory_user),
    }


def set_config(new_config: Dict[str, Any]) -> None:
    """Set configuration (merges with existing config)"""
    global _auth_token

    for key in (
        'directory_url',
        'directory_token',
        'directory_user',
        'directory_password',
        'environment',
        'access_name',
        'host_key_path',
        'verify_ssl',
        'debug',
    ):
        if key in new_config:
            setattr(_config, key, new_config[key])
    for key in ('ssh_port', 'max_concurrency', 'request_timeout'):
        if key in new_config:
            setattr(_config, key, int(new_config[key]))
    for key in ('command_timeout', 'connection_timeout'):
        if key in new_config:
            setattr(_config, key, float(new_config[key]))

    # Clear session token when credentials change
    if any(k in new_config for k in ['directory_user', 'directory_password', 'directory_token']):
        _auth_token = None

    debug_log(
        'Configuration updated:',
        f'directory_url={_config.directory_url}',
        f'environment={_config.environment}',
        f'max_concurrency={_config.max_concurrency}',
    )


def reset_config() -> None:
    """Reset configuration to defaults (from environment variables)"""
    global _config, _auth_token
    _config = DshConfig()
    _auth_token = None


def get_directory_api_url() -> str:
    """
    Get the directory JSON-RPC endpoint

    Raises:
        ValueError: If the directory URL is not configured
    """
    if not _config.directory_url:
        raise ValueError(
            'Directory URL not configured. Set DSH_DIRECTORY_URL environment variable '
            'or call set_config()'
        )

    base_url = _config.directory_url.rstrip('/')
    if base_url.endswith('/api/jsonrpc'):
        return base_url
    return f'{base_url}/api/jsonrpc'


def get_directory_token() -> Optional[str]:
    return _config.directory_token


def get_directory_credentials() -> Optional[tuple]:
    """Get (user, password) when both are configured"""
    if _config.directory_user and _config.directory_password:
        return _config.directory_user, _config.directory_password
    return None


def get_session_token() -> Optional[str]:
    return _auth_token


def set_session_token(token: Optional[str]) -> None:
    global _auth_token
    _auth_token = token


def get_environment() -> str:
    """Get the deployment environment used to scope directory queries"""
    return _config.environment


def get_access_name() -> str:
    """Get the name other hosts use to reach this host"""
    return _config.access_name or socket.getfqdn()


def get_host_key_path() -> str:
    return _config.host_key_path


def get_ssh_port() -> int:
    return _config.ssh_port


def get_max_concurrency() -> int:
    return _config.max_concurrency


def get_command_timeout() -> float:
    """Get per-host execution timeout in seconds"""
    return _config.command_timeout


def get_connection_timeout() -> float:
    """Get connection timeout in seconds"""
    return _config.connection_timeout


def get_request_timeout() -> int:
    return _config.request_timeout


def get_verify_ssl() -> bool:
    return _config.verify_ssl


def debug_log(message: str, *args: Any) -> None:
    """Debug log helper"""
    if _config.debug:
        if args:
            print(f'[DSH] {message}', *args)
        else:
            print(f'[DSH] {message}')

"""
Utility functions for direct directory API calls
"""

import itertools
from typing import Any, Dict

import requests

from .config import (
    debug_log,
    get_directory_api_url,
    get_directory_credentials,
    get_directory_token,
    get_request_timeout,
    get_session_token,
    get_verify_ssl,
    set_session_token,
)
from .errors import DirectoryQueryError, DirectoryUnavailable


# Counter for generating unique request IDs
_request_ids = itertools.count(1)

_HEADERS = {'Content-Type': 'application/json-rpc'}


def _post(method: str, body: Dict[str, Any]) -> Any:
    """POST one JSON-RPC body and return its result member"""
    url = get_directory_api_url()
    try:
        response = requests.post(
            url,
            json=body,
            headers=_HEADERS,
            verify=get_verify_ssl(),
            timeout=get_request_timeout(),
        )
    except (requests.ConnectionError, requests.Timeout) as exc:
        debug_log(f"{method} failed:", str(exc))
        raise DirectoryUnavailable(method, str(exc))
    except requests.RequestException as exc:
        debug_log(f"{method} failed:", str(exc))
        raise DirectoryUnavailable(method, f"Request failed: {exc}")

    if response.status_code >= 500:
        debug_log(f"{method} failed:", f"{response.status_code} {response.text}")
        raise DirectoryUnavailable(method, f"HTTP {response.status_code}: {response.text or response.reason}")
    if not response.ok:
        debug_log(f"{method} failed:", f"{response.status_code} {response.text}")
        raise DirectoryQueryError(method, f"HTTP {response.status_code}: {response.text or response.reason}")

    try:
        result = response.json()
    except ValueError as exc:
        raise DirectoryQueryError(method, f"Invalid JSON response: {exc}")

    if 'error' in result:
        error = result['error']
        debug_log(f"{method} failed:", error)
        raise DirectoryQueryError(
            method,
            f"{error.get('message', 'Unknown error')} (data: {error.get('data', 'none')})",
            code=error.get('code'),
        )
    if 'result' not in result:
        raise DirectoryQueryError(method, 'Response carries no result')
    return result['result']


def authenticate() -> str:
    """
    Log in with username/password and cache the session token

    Raises:
        ValueError: If username/password not configured
    """
    token = get_session_token()
    if token:
        return token

    credentials = get_directory_credentials()
    if credentials is None:
        raise ValueError('Directory username and password not configured')
    user, password = credentials

    debug_log(f'Authenticating user: {user}')
    token = _post('user.login', {
        'jsonrpc': '2.0',
        'method': 'user.login',
        'params': {'username': user, 'password': password},
        'id': next(_request_ids),
    })
    set_session_token(token)
    return token


def get_auth() -> str:
    """
    Get authentication parameter for request body

    Raises:
        ValueError: If no authentication method is configured
    """
    token = get_directory_token()
    if token:
        return token
    if get_directory_credentials() is not None:
        return authenticate()
    raise ValueError(
        'No authentication method configured. '
        'Set DSH_DIRECTORY_TOKEN or DSH_DIRECTORY_USER/DSH_DIRECTORY_PASSWORD'
    )


def directory_request(method: str, params: Any = None) -> Any:
    """
    Make a direct request to the directory API

    Args:
        method: API method (e.g., 'node.search', 'node.publish')
        params: Parameters to pass to the method

    Returns:
        The decoded result member of the response

    Raises:
        DirectoryUnavailable: If the service cannot be reached
        DirectoryQueryError: If the service rejects the request

    Example:
        nodes = directory_request('node.search', {
            'index': 'node',
            'query': {'dsh_groups': 'web', 'environment': 'production'},
        })
    """
    if params is None:
        params = {}

    body: Dict[str, Any] = {
        'jsonrpc': '2.0',
        'method': method,
        'params': params,
        'id': next(_request_ids),
        'auth': get_auth(),
    }

    debug_log(f'Calling {method}', params)
    result = _post(method, body)
    debug_log(f"{method} completed successfully")
    return result

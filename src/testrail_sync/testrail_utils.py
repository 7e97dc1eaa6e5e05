from __future__ import annotations

import logging
import os
from typing import Final

from . import utils
from .exceptions import ConfigError
from .testrail_client import TestRailHTTPClient

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_URL_ENV_VAR: Final[str] = "TESTRAIL_URL"
_USERNAME_ENV_VAR: Final[str] = "TESTRAIL_USERNAME"
_API_KEY_ENV_VAR: Final[str] = "TESTRAIL_API_KEY"
_DEFAULT_API_KEY_PASS_PATH: Final[str] = "testrail/api_key"


def get_url(url: str | None = None) -> str:
    """Get the TestRail base URL from the argument or env var TESTRAIL_URL."""
    value = url or os.environ.get(_URL_ENV_VAR)
    if not value:
        msg = f"TestRail URL not specified. Use --url or set {_URL_ENV_VAR}."
        raise ConfigError(msg)
    return value


def get_username(username: str | None = None) -> str:
    """Get the TestRail user (email) from the argument or env var TESTRAIL_USERNAME."""
    value = username or os.environ.get(_USERNAME_ENV_VAR)
    if not value:
        msg = f"TestRail username not specified. Use --username or set {_USERNAME_ENV_VAR}."
        raise ConfigError(msg)
    return value


def get_api_key(pass_path: str | None = None) -> str:
    """Get the API key from pass path, env var TESTRAIL_API_KEY, or the default pass location."""
    # Try pass path first
    if pass_path:
        return utils.get_pass_value(pass_path)

    # Try environment variable
    api_key: str | None = os.environ.get(_API_KEY_ENV_VAR)
    if api_key:
        return api_key

    # Try default pass path
    try:
        return utils.get_pass_value(_DEFAULT_API_KEY_PASS_PATH)
    except utils.PassError as e:
        logger.debug(f"No API key at default pass path: {e}")
        msg = f"TestRail API key not found. Use --api-key-pass or set {_API_KEY_ENV_VAR}."
        raise ConfigError(msg) from e


def get_client(
    url: str | None = None,
    username: str | None = None,
    api_key_pass_path: str | None = None,
    *,
    verify: bool = True,
) -> TestRailHTTPClient:
    """Get a TestRail client with credentials resolved from flags, environment and pass."""
    return TestRailHTTPClient(
        get_url(url),
        get_username(username),
        get_api_key(api_key_pass_path),
        verify=verify,
    )

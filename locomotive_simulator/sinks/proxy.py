"""Forward proxy resolution shared by both sinks and the token request."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

__all__ = ["PROXY_ENV_VARS", "proxy_from_env"]

logger = logging.getLogger("locomotive_simulator.sinks.proxy")

PROXY_ENV_VARS = ("http_proxy", "HTTP_PROXY", "https_proxy", "HTTPS_PROXY")


def proxy_from_env(environ: Mapping[str, str] | None = None) -> str | None:
    """Return the first non-empty proxy URL set in the environment, if any."""
    environ = os.environ if environ is None else environ
    for var in PROXY_ENV_VARS:
        value = environ.get(var, "").strip()
        if value:
            logger.debug("Using proxy %s from $%s", value, var)
            return value
    return None

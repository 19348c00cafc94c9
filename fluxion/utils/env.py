"""
Secret lookup helpers.

Secrets are never stored in the YAML config. They are read from the
environment, either directly (``NAME``) or from a mounted file whose path
is given by ``NAME_FILE`` (docker/k8s secrets).
"""
import os
from typing import Optional

from fluxion.utils.logging import get_logger

logger = get_logger(__name__)


def read_secret(secret_name: str, default: Optional[str] = "") -> Optional[str]:
    value = os.environ.get(secret_name)
    if value:
        return value.strip()

    secret_file = os.environ.get(f"{secret_name}_FILE")
    if secret_file:
        try:
            with open(secret_file, "r") as f:
                return f.read().strip()
        except OSError as e:
            logger.warning(f"Could not read secret file for {secret_name} at {secret_file}: {e}")

    return default


def require_secrets(*secret_names: str) -> list:
    """Return the names of secrets that are not set."""
    return [name for name in secret_names if not read_secret(name)]

"""
Environment and secret helpers.

Secrets can be provided directly (NAME=value) or, following the docker
secrets convention, through a file (NAME_FILE=/run/secrets/name).
"""

import os
from typing import Mapping, Optional

from src.utils.rbac.errors import RBACConfigError


def read_secret(name: str, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Read a secret from the environment or from the file named by NAME_FILE.

    Returns:
        The stripped secret value, or None if neither source is set
    """
    env = os.environ if env is None else env

    value = env.get(name)
    if value:
        return value.strip()

    file_path = env.get(f"{name}_FILE")
    if file_path and os.path.isfile(file_path):
        with open(file_path, "r") as f:
            return f.read().strip() or None

    return None


def require_secret(name: str, env: Optional[Mapping[str, str]] = None) -> str:
    """
    Like read_secret, but fails fast when the secret is missing.

    Raises:
        RBACConfigError: If the secret is not configured
    """
    value = read_secret(name, env)
    if not value:
        raise RBACConfigError(f"Required setting {name} is not set", field=name)
    return value

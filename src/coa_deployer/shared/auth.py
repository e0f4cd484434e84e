"""Credential resolution for coa-deployer.

Tokens are opaque strings: a bearer token for the provisioning API and a
SAS token for the configuration blob container.
"""

import os

from .paths import get_token_file

ARM_TOKEN_ENV = "COA_ARM_TOKEN"
STORAGE_SAS_TOKEN_ENV = "COA_STORAGE_SAS_TOKEN"


def get_token(
    source: str,
    token_arg: str | None = None,
    env_var: str | None = None,
) -> str | None:
    """Resolve token from: CLI arg > env var > stored file.

    Args:
        source: Token source name (e.g., "arm", "storage")
        token_arg: Token passed via CLI argument
        env_var: Environment variable name to check

    Returns:
        Token string if found, None if no credential is available
    """
    if token_arg:
        return token_arg

    if env_var and os.environ.get(env_var):
        return os.environ[env_var]

    token_file = get_token_file(source)
    if token_file.exists():
        return token_file.read_text().strip()

    return None


def auth_headers(token: str | None) -> dict[str, str]:
    """Build Authorization header dict.

    Args:
        token: Bearer token string

    Returns:
        Dict with Authorization header, or empty dict if no token
    """
    if token:
        return {"Authorization": f"Bearer {token}"}
    return {}

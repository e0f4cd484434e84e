"""Path management for coa-deployer.

Manages ~/.coa-deployer/ and the fixed temporary kubeconfig location.
"""

import tempfile
from pathlib import Path

# Base directory for all deployer data
DEPLOYER_DIR = Path.home() / ".coa-deployer"

# Token storage directory
TOKENS_DIR = DEPLOYER_DIR / "tokens"

# Cluster admin kubeconfig written by the client bootstrapper
KUBECONFIG_PATH = Path(tempfile.gettempdir()) / "kubeconfig.txt"


def get_token_file(source: str) -> Path:
    """Get path to a token file.

    Args:
        source: Token source name (e.g., "arm", "storage")

    Returns:
        Path to the token file
    """
    return TOKENS_DIR / f"{source}.token"

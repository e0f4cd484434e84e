"""Shared modules for coa-deployer.

This module provides functionality used by every deployer component:
- Logging configuration
- Fixed-delay retry policies
- Cooperative cancellation
- Paths and credential resolution
"""

from .auth import auth_headers, get_token
from .cancel import CancellationSignal
from .logging import configure_logging, get_logger
from .paths import DEPLOYER_DIR, KUBECONFIG_PATH, TOKENS_DIR, get_token_file
from .retry import CHANNEL_EXEC_POLICY, WORKLOAD_READY_POLICY, RetryPolicy, retry_async

__all__ = [
    # Paths
    "DEPLOYER_DIR",
    "TOKENS_DIR",
    "KUBECONFIG_PATH",
    "get_token_file",
    # Auth
    "get_token",
    "auth_headers",
    # Logging
    "configure_logging",
    "get_logger",
    # Retry
    "RetryPolicy",
    "retry_async",
    "WORKLOAD_READY_POLICY",
    "CHANNEL_EXEC_POLICY",
    # Cancellation
    "CancellationSignal",
]

"""Logging configuration for coa-deployer.

Log events go through structlog into the standard logging module. Interactive
runs get the console renderer on stderr; ``--json-logs`` switches to one JSON
object per line, and ``--log-file`` sends the same records to a file instead,
which keeps helm and pod output out of the terminal during long deployments.

Credentials pass through several call sites (SAS tokens on blob URLs, the
Resource Manager bearer token, the admin kubeconfig), so every event is
scrubbed by ``redact_secrets`` before rendering.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Any

import structlog

REDACTED = "***"

# Event keys whose values are never logged
SECRET_KEYS = frozenset({"sas_token", "token", "arm_token", "authorization", "kubeconfig", "password"})

# SAS signature in a query string: ...&sig=<base64>&...
_SAS_SIGNATURE = re.compile(r"(?i)(\bsig=)[^&\s\"']+")


def redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask credential values in a structlog event."""
    for key, value in event_dict.items():
        if key.lower() in SECRET_KEYS and value:
            event_dict[key] = REDACTED
        elif isinstance(value, str) and "sig=" in value.lower():
            event_dict[key] = _SAS_SIGNATURE.sub(rf"\g<1>{REDACTED}", value)
    return event_dict


def configure_logging(
    level: str = "info",
    log_file: str | Path | None = None,
    json_output: bool = False,
) -> None:
    """Configure logging for the deployer.

    Called once from the CLI group callback.

    Args:
        level: Log level name (debug, info, warning, error)
        log_file: Write records here instead of stderr
        json_output: Render JSON lines instead of the console format
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)

    logging.basicConfig(level=log_level, handlers=[handler], format="%(message)s", force=True)

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
    ]

    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        # No ANSI colour codes in a log file
        processors.append(structlog.dev.ConsoleRenderer(colors=log_file is None))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)

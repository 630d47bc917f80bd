"""
sourcing_config -- single public entrypoint for sourcing configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  It loads ``defaults.yaml`` (or an explicit file), validates
    every section and returns a frozen ``SourcingConfiguration``.

Architecture position:
    This package sits above ``sourcing_kernel``.  The kernel never imports
    from ``sourcing_config``; ``sourcing_config.bridges`` translates the
    configuration into kernel policy objects.

Failure modes:
    - ``FileNotFoundError`` if the configuration file does not exist.
    - ``ValueError`` for unknown sections or keys and mistyped values.

Every successful call emits a ``SOURCING_CONFIG_TRACE`` log entry with the
source path and checksum of the loaded data.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sourcing_config.loader import load_configuration
from sourcing_config.schema import SourcingConfiguration

_logger = logging.getLogger("sourcing_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> SourcingConfiguration:
    """Load and validate the configuration file (defaults.yaml if omitted)."""
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_configuration(config_path)

    _logger.info(
        "SOURCING_CONFIG_TRACE",
        extra={
            "trace_type": "SOURCING_CONFIG_TRACE",
            "source": config.source,
            "checksum": config.checksum,
            "score_floor": config.trust.score_floor,
            "gateway_timeout_seconds": config.payments.gateway_timeout_seconds,
        },
    )
    return config


__all__ = ["DEFAULT_CONFIG_PATH", "SourcingConfiguration", "get_active_config"]

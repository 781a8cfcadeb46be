"""
brickworks_config -- single public entrypoint for plant configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables.  Returns a ``CompiledPlantConfig``.

Architecture position:
    Configuration -- YAML-driven, validated before use.  This package sits
    above ``brickworks_kernel``.  The kernel never imports from
    ``brickworks_config``; bridges here translate parsed definitions into
    kernel StageDefinition / PoolDefinition objects.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - A configuration that fails validation is never returned.
    - Same YAML always produces the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested id.
    - ``ValueError`` -- validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``BRICKWORKS_CONFIG_TRACE`` log entry with the config id, version,
    checksum and the configured stages.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from brickworks_config.compiler import CompiledPlantConfig, compile_plant_config
from brickworks_config.loader import load_configuration
from brickworks_config.validator import validate_configuration

_logger = logging.getLogger("brickworks_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

DATABASE_URL_ENV = "BRICKWORKS_DATABASE_URL"


def get_active_config(
    config_id: str = "default",
    config_dir: Path | None = None,
) -> CompiledPlantConfig:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned config has passed validation.
        - ``BRICKWORKS_DATABASE_URL``, when set, replaces the configured
          database URL.
        - A ``BRICKWORKS_CONFIG_TRACE`` log entry is emitted.

    Args:
        config_id: Name of the configuration set directory.
        config_dir: Override path to the configuration sets directory.
            Defaults to brickworks_config/sets/.

    Raises:
        FileNotFoundError: If the configuration set does not exist.
        ValueError: If configuration validation fails.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    root_file = sets_dir / config_id / "root.yaml"
    if not root_file.is_file():
        raise FileNotFoundError(f"Configuration set not found: {root_file}")

    config = load_configuration(root_file)
    if config.config_id != config_id:
        raise ValueError(
            f"Configuration set {root_file} declares config_id {config.config_id!r}"
        )

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"warning": warning})

    database = config.database
    url_override = os.environ.get(DATABASE_URL_ENV)
    if url_override:
        database = replace(database, url=url_override)

    compiled = compile_plant_config(config, database)

    _logger.info(
        "BRICKWORKS_CONFIG_TRACE",
        extra={
            "trace_type": "BRICKWORKS_CONFIG_TRACE",
            "config_set_id": compiled.config_id,
            "config_set_version": compiled.version,
            "checksum": compiled.checksum,
            "stages": list(compiled.stages),
            "pools": list(compiled.pools),
            "database_overridden": bool(url_override),
        },
    )
    return compiled


__all__ = [
    "CompiledPlantConfig",
    "DATABASE_URL_ENV",
    "get_active_config",
]

"""
Configuration Validator (``brickworks_config.validator``).

Responsibility
--------------
Checks a parsed ``PlantConfiguration`` for structural integrity before it
is turned into kernel definitions.

Invariants enforced
-------------------
* Every stage draws from a declared pool.
* Aggregate types name a known table; stages never use ``stockpile``.
* A pool backed by batches names a completion status and matches the
  event prefix of the stage that produces it.
* Stage event prefixes are unique.
* View names are plain SQL identifiers.
* Roles are drawn from the closed role set.

Failure modes
-------------
* Errors  -> the configuration MUST NOT be used.
* Warnings  -> usable, but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from brickworks_config.schema import PlantConfiguration
from brickworks_kernel.db.views import IDENTIFIER_PATTERN
from brickworks_kernel.domain.lifecycle import BatchStatus
from brickworks_kernel.domain.roles import is_known_role
from brickworks_kernel.models import AGGREGATE_MODELS

_LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is True only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: PlantConfiguration) -> ConfigValidationResult:
    result = ConfigValidationResult()
    _validate_logging(config, result)
    _validate_pools(config, result)
    _validate_stages(config, result)
    return result


def _validate_logging(config: PlantConfiguration, result: ConfigValidationResult) -> None:
    if config.logging.level not in _LOG_LEVELS:
        result.add_error(f"Unknown log level: {config.logging.level}")


def _validate_roles(owner: str, roles: tuple[str, ...], result: ConfigValidationResult) -> None:
    for role in roles:
        if not is_known_role(role):
            result.add_error(f"{owner}: unknown role '{role}'")
    if not roles:
        result.add_warning(f"{owner}: no roles declared; any profile may operate it")


def _validate_pools(config: PlantConfiguration, result: ConfigValidationResult) -> None:
    stage_prefixes = {
        (s.aggregate_type, f"{s.event_prefix}_{s.noun}") for s in config.stages
    }
    statuses = {s.value for s in BatchStatus}

    for pool in config.pools:
        owner = f"pool '{pool.key}'"
        if pool.aggregate_type not in AGGREGATE_MODELS:
            result.add_error(f"{owner}: unknown aggregate type '{pool.aggregate_type}'")
            continue
        if not IDENTIFIER_PATTERN.match(pool.availability_view):
            result.add_error(f"{owner}: invalid view name '{pool.availability_view}'")

        if pool.aggregate_type == "stockpile":
            if pool.required_status is not None:
                result.add_error(f"{owner}: stockpile pools take no required_status")
        else:
            if pool.required_status not in statuses:
                result.add_error(
                    f"{owner}: batch pools need required_status in {sorted(statuses)}"
                )
            if (pool.aggregate_type, pool.event_prefix) not in stage_prefixes:
                result.add_error(
                    f"{owner}: no stage produces {pool.aggregate_type} "
                    f"with event prefix {pool.event_prefix}"
                )
        if pool.aggregate_type == "stockpile" or pool.roles:
            _validate_roles(owner, pool.roles, result)


def _validate_stages(config: PlantConfiguration, result: ConfigValidationResult) -> None:
    pool_keys = {p.key for p in config.pools}
    seen_prefixes: set[str] = set()
    seen_types: set[str] = set()

    for stage in config.stages:
        owner = f"stage '{stage.key}'"
        if stage.aggregate_type not in AGGREGATE_MODELS or stage.aggregate_type == "stockpile":
            result.add_error(f"{owner}: unknown batch aggregate type '{stage.aggregate_type}'")
        if stage.aggregate_type in seen_types:
            result.add_error(f"{owner}: aggregate type '{stage.aggregate_type}' used twice")
        seen_types.add(stage.aggregate_type)

        if stage.event_prefix in seen_prefixes:
            result.add_error(f"{owner}: duplicate event prefix '{stage.event_prefix}'")
        seen_prefixes.add(stage.event_prefix)

        if stage.input_pool not in pool_keys:
            result.add_error(f"{owner}: input pool '{stage.input_pool}' is not defined")
        _validate_roles(owner, stage.roles, result)

"""
Kernel configuration (``pharmacy_kernel.config``).

Responsibility
--------------
Typed, validated settings for the store connection, transaction retry policy
and ledger defaults, loaded from an optional YAML file with environment
variable overrides.

Architecture position
---------------------
**Config layer** -- infrastructure.  Read once by ``bootstrap.build_kernel``;
services receive the values they need through their constructors and never
read files or the environment themselves.

Invariants enforced
-------------------
* Every config object is a frozen dataclass validated in ``__post_init__``.
* Unknown YAML keys are rejected, not ignored.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range or unknown setting  -> ``ValueError``.

Example YAML::

    database_url: postgresql://pharmacy@localhost/pharmacy
    isolation_level: READ COMMITTED
    lock_timeout_ms: 5000
    retry:
      max_attempts: 3
      base_delay_s: 0.05
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

_ISOLATION_LEVELS = frozenset({"READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"})
_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class RetryPolicy:
    """
    How the transaction coordinator retries a unit of work that hit a
    transient store conflict.

    Delay before attempt n+1 is ``min(max_delay_s, base_delay_s * 2**(n-1))``
    scaled by a random factor in ``[1 - jitter, 1]``.
    """

    max_attempts: int = 3
    base_delay_s: float = 0.05
    max_delay_s: float = 1.0
    jitter: float = 0.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_s < 0 or self.max_delay_s < 0:
            raise ValueError("Retry delays must be non-negative")
        if not 0 <= self.jitter <= 1:
            raise ValueError(f"jitter must be between 0 and 1, got {self.jitter}")


@dataclass(frozen=True)
class KernelConfig:
    """Settings for one kernel instance."""

    database_url: str = "sqlite:///pharmacy.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    isolation_level: str = "READ COMMITTED"
    statement_timeout_ms: int = 30000
    lock_timeout_ms: int = 5000
    sqlite_busy_timeout_s: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    default_reorder_point: int = 10
    default_max_stock: int = 1000
    default_location: str = "MAIN_STORAGE"
    order_number_prefix: str = "ORD"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url is required")
        if self.isolation_level not in _ISOLATION_LEVELS:
            raise ValueError(
                f"isolation_level must be one of {sorted(_ISOLATION_LEVELS)}, "
                f"got {self.isolation_level!r}"
            )
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Unknown log_level: {self.log_level!r}")
        for name in ("pool_size", "statement_timeout_ms", "lock_timeout_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.max_overflow < 0:
            raise ValueError("max_overflow must be non-negative")
        if self.default_reorder_point < 0 or self.default_max_stock < 0:
            raise ValueError("Stock defaults must be non-negative")
        if not self.order_number_prefix:
            raise ValueError("order_number_prefix is required")


# Environment variable -> (field, parser)
_ENV_OVERRIDES: dict[str, tuple[str, Callable[[str], Any]]] = {
    "DATABASE_URL": ("database_url", str),
    "PHARMACY_DB_ECHO": ("echo", lambda v: v.lower() in ("1", "true", "yes")),
    "PHARMACY_ISOLATION_LEVEL": ("isolation_level", str),
    "PHARMACY_LOCK_TIMEOUT_MS": ("lock_timeout_ms", int),
    "PHARMACY_STATEMENT_TIMEOUT_MS": ("statement_timeout_ms", int),
    "PHARMACY_LOG_LEVEL": ("log_level", str),
}

_RETRY_ENV_OVERRIDES: dict[str, tuple[str, Callable[[str], Any]]] = {
    "PHARMACY_MAX_ATTEMPTS": ("max_attempts", int),
}


def _env_values(
    env: Mapping[str, str], table: Mapping[str, tuple[str, Callable[[str], Any]]]
) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for var, (name, parse) in table.items():
        raw = env.get(var)
        if not raw:
            continue
        try:
            values[name] = parse(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid {var}: {raw!r}") from exc
    return values


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def config_from_dict(data: Mapping[str, Any]) -> KernelConfig:
    """Build a KernelConfig from a plain mapping (parsed YAML)."""
    known = {f.name for f in fields(KernelConfig)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown config keys: {sorted(unknown)}")

    values = dict(data)
    retry = values.pop("retry", None)
    if retry is not None:
        if not isinstance(retry, Mapping):
            raise ValueError("retry must be a mapping")
        retry_known = {f.name for f in fields(RetryPolicy)}
        retry_unknown = set(retry) - retry_known
        if retry_unknown:
            raise ValueError(f"Unknown retry keys: {sorted(retry_unknown)}")
        values["retry"] = RetryPolicy(**retry)
    return KernelConfig(**values)


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> KernelConfig:
    """
    Load configuration from an optional YAML file, then apply environment
    overrides.

    Args:
        path: YAML file to read.  None means defaults only.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        A validated KernelConfig.
    """
    env = os.environ if environ is None else environ
    config = config_from_dict(load_yaml_file(Path(path))) if path else KernelConfig()

    overrides = _env_values(env, _ENV_OVERRIDES)
    retry_overrides = _env_values(env, _RETRY_ENV_OVERRIDES)
    if retry_overrides:
        overrides["retry"] = replace(config.retry, **retry_overrides)
    if overrides:
        config = replace(config, **overrides)
    return config

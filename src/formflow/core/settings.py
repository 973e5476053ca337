"""
Engine configuration for formflow.

Settings come from environment variables so that the same configuration
document behaves the same way in every host, with per-deployment tuning:

    FORMFLOW_ENV                   development (default), test, production
    FORMFLOW_LOG_LEVEL             logging level name used by the CLI
    FORMFLOW_DEBOUNCE_MS           default debounce for debounced edits
    FORMFLOW_DEFERRED_WORKERS      worker threads for deferred custom rules
    FORMFLOW_MAX_DEPENDENCY_DEPTH  safety bound for dependency closures
    FORMFLOW_FUNCTION_LOG_SIZE     entries kept in the custom function call log

Usage:
    from formflow.core.settings import get_settings

    settings = get_settings()
    engine = FormEngine(config, settings=settings)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class FormflowEnv(StrEnum):
    """Runtime environment values."""

    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


FORMFLOW_ENV_VAR = "FORMFLOW_ENV"

_DEFAULT_ENV = FormflowEnv.DEVELOPMENT


class EngineSettings(BaseModel):
    """
    Tunables for a form engine instance.

    Attributes:
        env: Runtime environment
        log_level: Logging level name for CLI/host logging setup
        default_debounce_ms: Debounce applied by ``update_value_debounced`` when
            the element does not declare its own
        deferred_workers: Thread pool size for deferred custom validation
        max_dependency_depth: Maximum BFS depth of a dependency closure.
            ``None`` means the total element count of the configuration.
        function_log_size: Number of custom function calls kept for auditing
    """

    env: FormflowEnv = _DEFAULT_ENV
    log_level: str = "WARNING"
    default_debounce_ms: int = Field(default=0, ge=0)
    deferred_workers: int = Field(default=2, ge=1)
    max_dependency_depth: int | None = Field(default=None, ge=1)
    function_log_size: int = Field(default=1000, ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def is_production(self) -> bool:
        return self.env == FormflowEnv.PRODUCTION


def get_formflow_env(environ: Mapping[str, str] | None = None) -> FormflowEnv:
    """Get the current environment from FORMFLOW_ENV.

    Defaults to development if FORMFLOW_ENV is not set or invalid.
    """
    source = os.environ if environ is None else environ
    env_value = source.get(FORMFLOW_ENV_VAR, "").lower().strip()

    if env_value in ("production", "prod"):
        return FormflowEnv.PRODUCTION
    elif env_value in ("test", "testing"):
        return FormflowEnv.TEST
    elif env_value in ("development", "dev", ""):
        return FormflowEnv.DEVELOPMENT
    else:
        logger.warning(
            "Unknown FORMFLOW_ENV value '%s'. "
            "Valid values: development, test, production. Defaulting to development.",
            env_value,
        )
        return _DEFAULT_ENV


def _int_from_env(source: Mapping[str, str], name: str, default: int | None) -> int | None:
    raw = source.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def get_settings(environ: Mapping[str, str] | None = None) -> EngineSettings:
    """Build EngineSettings from environment variables.

    Args:
        environ: Mapping to read instead of ``os.environ`` (used by tests).

    Returns:
        Frozen settings object.
    """
    source = os.environ if environ is None else environ
    defaults = EngineSettings()
    return EngineSettings(
        env=get_formflow_env(source),
        log_level=source.get("FORMFLOW_LOG_LEVEL", defaults.log_level).upper(),
        default_debounce_ms=_int_from_env(
            source, "FORMFLOW_DEBOUNCE_MS", defaults.default_debounce_ms
        ),
        deferred_workers=_int_from_env(
            source, "FORMFLOW_DEFERRED_WORKERS", defaults.deferred_workers
        ),
        max_dependency_depth=_int_from_env(
            source, "FORMFLOW_MAX_DEPENDENCY_DEPTH", defaults.max_dependency_depth
        ),
        function_log_size=_int_from_env(
            source, "FORMFLOW_FUNCTION_LOG_SIZE", defaults.function_log_size
        ),
    )

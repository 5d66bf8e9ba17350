"""Core infrastructure: config, errors, run context, logging, and utilities."""

from core.config import Settings, load_config
from core.context import RunContext, StageLog
from core.errors import (
    AuthenticationError,
    CollectionError,
    ConfigurationError,
    ConfigValidationError,
    TransientHTTPError,
)
from core.ids import generate_run_id, structure_hash

__all__ = [
    "Settings",
    "load_config",
    "RunContext",
    "StageLog",
    "CollectionError",
    "ConfigurationError",
    "ConfigValidationError",
    "AuthenticationError",
    "TransientHTTPError",
    "generate_run_id",
    "structure_hash",
]

"""invmem core: shared types, config, errors, and logging."""
from __future__ import annotations

from invmem_core._version import __version__
from invmem_core.config import EngineConfig, InvmemConfig, LoggingConfig
from invmem_core.errors import (
    ConfigError,
    ConstraintViolationError,
    InputError,
    InvalidMemoryError,
    InvmemError,
    MalformedInvoiceError,
    StorageUnavailableError,
    StoreError,
)
from invmem_core.logging import get_logger, setup_logging
from invmem_core.types import (
    DEFAULT_DECAY_RATE,
    AuditEntry,
    AuditStep,
    Invoice,
    InvoiceCorrection,
    LineItem,
    MemoryKind,
    MemoryRecord,
    PipelineOutput,
)

__all__ = [
    "DEFAULT_DECAY_RATE",
    # Types
    "AuditEntry",
    "AuditStep",
    # Errors
    "ConfigError",
    "ConstraintViolationError",
    # Config
    "EngineConfig",
    "InputError",
    "InvalidMemoryError",
    "InvmemConfig",
    "InvmemError",
    "Invoice",
    "InvoiceCorrection",
    "LineItem",
    "LoggingConfig",
    "MalformedInvoiceError",
    "MemoryKind",
    "MemoryRecord",
    "PipelineOutput",
    "StorageUnavailableError",
    "StoreError",
    # Version
    "__version__",
    # Logging
    "get_logger",
    "setup_logging",
]

from __future__ import annotations


class InvmemError(Exception):
    """Base exception for all invmem errors."""


# ── Store Errors ─────────────────────────────────────────────────────

class StoreError(InvmemError):
    """Base for memory store errors."""


class StorageUnavailableError(StoreError):
    """Backing database cannot be opened or written."""


class ConstraintViolationError(StoreError):
    """A write would break the (kind, vendor, key) uniqueness invariant."""


# ── Input Errors ─────────────────────────────────────────────────────

class InputError(InvmemError):
    """Base for invalid pipeline input."""


class MalformedInvoiceError(InputError):
    """Invoice lacks the identity fields needed to scope memories."""


class InvalidMemoryError(InputError, ValueError):
    """Memory confidence or decay rate lies outside [0, 1]."""


# ── Config Errors ────────────────────────────────────────────────────

class ConfigError(InvmemError):
    """Invalid or missing configuration."""

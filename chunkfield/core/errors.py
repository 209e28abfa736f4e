# ═══════════════════════════════════════════════════════════════════════════════
# ERRORS
# Design: I1 (Systems Architect) | Implementation: I3 (State Management)
# ═══════════════════════════════════════════════════════════════════════════════

"""
I1: "Bad configuration fails at construction. A slow field that never
settles is not an error, it's a quality signal. NaN is always our bug."
"""

from __future__ import annotations


class ChunkingError(Exception):
    """Base class for chunking engine errors."""
    pass


class ConfigurationError(ChunkingError, ValueError):
    """Raised when a configuration value is out of range or inconsistent."""
    pass


class DimensionMismatchError(ChunkingError, ValueError):
    """Raised when an item's dimension differs from the configured dimension."""
    pass


class InvalidStateError(ChunkingError):
    """Raised when a collaborator breaks its contract or state is impossible."""
    pass


class InvariantViolationError(ChunkingError):
    """Raised when internal numeric state becomes non-finite."""
    pass

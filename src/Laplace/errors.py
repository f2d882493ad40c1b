"""Exceptions raised by the Laplace solver.

All of them are fatal: the entry point logs the message and terminates.
"""


class LaplaceError(Exception):
    """Base class for solver errors."""


class ConfigurationError(LaplaceError, ValueError):
    """N / P / scheme combination violates a partition constraint.

    Derived only from globally known inputs, so every rank raises it
    identically and independently.
    """


class ArgumentError(LaplaceError, ValueError):
    """Missing or invalid command-line input."""


class AllocationError(LaplaceError, MemoryError):
    """Local buffers could not be allocated on this rank."""

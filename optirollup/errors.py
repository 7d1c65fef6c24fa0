"""
Exception types raised by the rollup core.

Per-transaction validation failures are never raised; they are returned as
``Result`` values (see ``optirollup.core``). Exceptions are reserved for input
that is malformed before any state transition can be judged.
"""


class RollupError(Exception):
    """Base class for all errors raised by this package."""
    pass


class EncodingError(RollupError):
    """Raised when a value cannot be expressed in a fixed mantissa/exponent width."""
    pass


class StateDecodeError(RollupError):
    """Raised when serialized account bytes have the wrong shape."""
    pass


class ConfigError(RollupError):
    """Raised when a configuration file cannot be loaded."""
    pass


class ValidationError(RollupError):
    """Raised when dispute input is rejected before transition processing."""
    pass


class ProofVerificationError(ValidationError):
    """A supplied Merkle witness does not match the claimed root."""
    pass


class MalformedDisputeError(ValidationError):
    """The dispute itself is invalid, e.g. the transaction root does not match."""
    pass

"""
Error taxonomy shared by the store, encoders and pipeline controller.
"""


class ClapSearchError(Exception):
    """Base class for all clap_search errors."""


class InitFailure(ClapSearchError):
    """A store or model subsystem could not start."""


class LoadFailure(InitFailure):
    """An encoder failed to load. Terminal for that encoder instance."""


class NotReadyError(ClapSearchError, RuntimeError):
    """Operation attempted before the model or store it needs is ready."""


class BusyError(ClapSearchError, RuntimeError):
    """Another pipeline operation is already running."""

    def __init__(self, running: str):
        super().__init__(f"Operation '{running}' is already running")
        self.running = running


class DimensionMismatchError(ClapSearchError, ValueError):
    """Embedding length does not match the store's established dimension."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Vector dimension {actual} does not match expected dimension {expected}")
        self.expected = expected
        self.actual = actual


class EncodeFailure(ClapSearchError):
    """The encoder could not produce an embedding for one input."""


class UnsupportedFormatError(EncodeFailure):
    """Input could not be decoded or is not at the encoder's sample rate."""


class StoreIOError(ClapSearchError):
    """Persistence layer failed on insert, scan or open."""


class ClearBlockedError(ClapSearchError):
    """Collection could not be dropped because another handle is open on it."""


class ClearFailure(ClapSearchError):
    """Collection drop failed for a reason other than an open handle."""

"""Exception types raised at the external boundaries of the creation pipeline."""


class PodforgeError(Exception):
    """Base class for podforge errors."""


class StorageError(PodforgeError):
    """A storage adapter or session backend failed to read or write."""


class GenerationError(PodforgeError):
    """The generation service failed, returned unusable output, or timed out."""


class DraftStateError(PodforgeError):
    """An operation is not legal in the draft's current state (e.g. a second generate)."""

from __future__ import annotations


class SnapshotLoadError(Exception):
    """A snapshot could not be fetched or parsed; the Store keeps its state."""


class MalformedPayloadError(ValueError):
    pass


class UnknownActionError(Exception):
    pass

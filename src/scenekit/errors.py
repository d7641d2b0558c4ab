"""Exception types raised by the scene toolkit."""

from __future__ import annotations


class SceneKitError(Exception):
    """Base class for all toolkit specific errors."""


class ConfigurationError(SceneKitError):
    """Raised when a router is assembled from an invalid set of scenes."""


class DuplicateSceneId(ConfigurationError):
    """Two registered scenes share the same identifier."""

    def __init__(self, scene_id: str) -> None:
        super().__init__(f"duplicate scene id: {scene_id}")
        self.scene_id = scene_id


class DuplicateScenePrefix(ConfigurationError):
    """Two registered scenes share the same callback prefix."""

    def __init__(self, prefix: str) -> None:
        super().__init__(f"duplicate scene prefix: {prefix}")
        self.prefix = prefix


class TransportError(SceneKitError):
    """Raised by transports when a send, edit, delete or answer fails."""


class StorageError(SceneKitError):
    """Raised by session and metadata stores when a read or write fails."""


__all__ = [
    "SceneKitError",
    "ConfigurationError",
    "DuplicateSceneId",
    "DuplicateScenePrefix",
    "TransportError",
    "StorageError",
]

"""Configuration helpers for deploying scene routers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Tuple, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    from .metadata import MetadataStore
    from .session import SessionStore


DEFAULT_SNAPSHOT_TTL_SECS = 3 * 24 * 60 * 60
MAX_SNAPSHOT_TTL_SECS = 0xFFFFFFFF
DEFAULT_STALE_MENU_TEXT = (
    "This menu is no longer active, enter /start command and open this section again."
)
DEFAULT_CLOSE_BUTTON_TEXT = "❌ Close"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def _parse_positive_int(
    value: str | None, *, name: str, default: int, maximum: int | None = None
) -> int:
    if value is None:
        return default

    trimmed = value.strip()
    if not trimmed:
        return default

    try:
        parsed = int(trimmed)
    except ValueError as exc:
        raise ValueError(f"{name} must be a positive integer.") from exc
    if parsed < 1:
        raise ValueError(f"{name} must be greater than zero.")
    if maximum is not None and parsed > maximum:
        raise ValueError(f"{name} must not exceed {maximum}.")
    return parsed


def _parse_flag(value: str | None, *, name: str, default: bool) -> bool:
    if value is None:
        return default

    trimmed = value.strip().lower()
    if not trimmed:
        return default
    if trimmed in _TRUE_VALUES:
        return True
    if trimmed in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag (true/false).")


@dataclass(frozen=True)
class SceneKitSettings:
    """Runtime settings shared by the router, viewport and stores.

    Values are read from ``SCENEKIT_*`` environment variables so deployments
    can tune the toolkit without code changes. Empty strings are treated as if
    the variable was unset.
    """

    snapshot_ttl_secs: int = DEFAULT_SNAPSHOT_TTL_SECS
    delete_unhandled_messages: bool = True
    stale_menu_text: str = DEFAULT_STALE_MENU_TEXT
    close_button_text: str = DEFAULT_CLOSE_BUTTON_TEXT
    session_dir: Path | None = None
    metadata_dir: Path | None = None
    metadata_namespace: str = "msgmeta"

    def __post_init__(self) -> None:
        ttl = self.snapshot_ttl_secs
        if isinstance(ttl, bool) or not isinstance(ttl, int):
            raise TypeError("snapshot_ttl_secs must be an integer")
        if not 1 <= ttl <= MAX_SNAPSHOT_TTL_SECS:
            raise ValueError(
                f"snapshot_ttl_secs must be between 1 and {MAX_SNAPSHOT_TTL_SECS}"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SceneKitSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.

        Raises:
            ValueError: If a numeric or boolean variable cannot be parsed.
        """

        source = environ if environ is not None else os.environ

        return cls(
            snapshot_ttl_secs=_parse_positive_int(
                source.get("SCENEKIT_SNAPSHOT_TTL_SECS"),
                name="SCENEKIT_SNAPSHOT_TTL_SECS",
                default=DEFAULT_SNAPSHOT_TTL_SECS,
                maximum=MAX_SNAPSHOT_TTL_SECS,
            ),
            delete_unhandled_messages=_parse_flag(
                source.get("SCENEKIT_DELETE_UNHANDLED"),
                name="SCENEKIT_DELETE_UNHANDLED",
                default=True,
            ),
            stale_menu_text=_normalise_string(
                source.get("SCENEKIT_STALE_MENU_TEXT"),
                default=DEFAULT_STALE_MENU_TEXT,
            ),
            close_button_text=_normalise_string(
                source.get("SCENEKIT_CLOSE_BUTTON_TEXT"),
                default=DEFAULT_CLOSE_BUTTON_TEXT,
            ),
            session_dir=_normalise_path(source.get("SCENEKIT_SESSION_DIR")),
            metadata_dir=_normalise_path(source.get("SCENEKIT_METADATA_DIR")),
            metadata_namespace=_normalise_string(
                source.get("SCENEKIT_METADATA_NAMESPACE"),
                default="msgmeta",
            ),
        )

    def build_stores(self) -> Tuple["SessionStore", "MetadataStore"]:
        """Return session and metadata stores matching these settings.

        File backed stores are used when the corresponding directory is
        configured; otherwise the in-memory variants are returned.
        """

        from .metadata import FileMetadataStore, InMemoryMetadataStore
        from .session import FileSessionStore, InMemorySessionStore

        sessions: SessionStore
        if self.session_dir is not None:
            sessions = FileSessionStore(self.session_dir)
        else:
            sessions = InMemorySessionStore()

        metadata: MetadataStore
        if self.metadata_dir is not None:
            metadata = FileMetadataStore(
                self.metadata_dir, namespace=self.metadata_namespace
            )
        else:
            metadata = InMemoryMetadataStore()

        return sessions, metadata


__all__ = [
    "DEFAULT_CLOSE_BUTTON_TEXT",
    "DEFAULT_SNAPSHOT_TTL_SECS",
    "DEFAULT_STALE_MENU_TEXT",
    "MAX_SNAPSHOT_TTL_SECS",
    "SceneKitSettings",
]

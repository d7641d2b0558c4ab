"""Canonical encoding and checksums for persisted scene state."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


def canonical_json(value: Any) -> str:
    """Serialise ``value`` into byte-stable JSON.

    Raises:
        TypeError: If ``value`` contains objects JSON cannot represent.
        ValueError: If ``value`` contains circular references or NaN.
    """

    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def content_checksum(text: str) -> str:
    """Return the hex SHA-256 digest of ``text`` encoded as UTF-8."""

    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class SceneHint(BaseModel):
    """Envelope recorded in a session for each message a scene produced.

    A hint always names the owning scene. When it carries state, the state's
    checksum travels with it so a stale or unrelated value stored under a
    reused message id cannot pass for valid scene state.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    scene_id: str = Field(..., min_length=1)
    scene_version: int = Field(..., ge=0, le=0xFFFF)
    state_json: str | None = None
    checksum: str | None = None

    @model_validator(mode="after")
    def _require_checksum_with_state(self) -> "SceneHint":
        if self.state_json is not None and self.checksum is None:
            raise ValueError("state_json requires a checksum")
        return self

    @classmethod
    def for_state(
        cls, scene_id: str, scene_version: int, state_json: str | None
    ) -> "SceneHint":
        """Build a hint whose checksum is computed from ``state_json``."""

        checksum = content_checksum(state_json) if state_json is not None else None
        return cls(
            scene_id=scene_id,
            scene_version=scene_version,
            state_json=state_json,
            checksum=checksum,
        )

    def encode(self) -> str:
        return canonical_json(self.model_dump())

    @classmethod
    def decode(cls, raw: str | None) -> "SceneHint | None":
        """Parse a stored hint, returning ``None`` for anything malformed.

        Bare JSON strings written by older releases are rejected.
        """

        if not raw:
            return None
        try:
            return cls.model_validate_json(raw)
        except ValidationError:
            return None


__all__ = ["SceneHint", "canonical_json", "content_checksum"]

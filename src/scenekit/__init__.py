"""Scene based conversation flows for chat messaging surfaces."""

from .callbacks import (
    BACK,
    CANCEL,
    DISABLE_INFO_NOTIFICATIONS,
    DISABLE_NOTIFICATIONS,
    HIDE,
    MAX_CALLBACK_BYTES,
)
from .engine import (
    RESTORE_DIALOGUE,
    RESTORE_INIT,
    RESTORE_META,
    RESTORE_MISMATCH,
    RestoreResult,
    Turn,
    apply_effect,
    init_and_render,
    restore_state,
)
from .errors import (
    ConfigurationError,
    DuplicateSceneId,
    DuplicateScenePrefix,
    SceneKitError,
    StorageError,
    TransportError,
)
from .integrity import SceneHint, canonical_json, content_checksum
from .keyboard import InlineButton, InlineKeyboard
from .metadata import (
    FileMetadataStore,
    InMemoryMetadataStore,
    MessageMetadata,
    MetadataStore,
    NoopMetadataStore,
)
from .observer import CountingObserver, RouterObserver
from .router import Router, RouterBuilder, SceneRoute
from .scene import (
    AnyText,
    Bindings,
    CallbackBinding,
    ClearPrompt,
    Command,
    Ctx,
    Effect,
    ExactKey,
    KeyPrefix,
    MessageBinding,
    Noop,
    NoopWithSideEffects,
    Notification,
    Regex,
    RenderPolicy,
    Scene,
    Snapshot,
    Stay,
    StayWithSideEffects,
    SwitchScene,
    TextPrefix,
    View,
)
from .scheduler import AsyncioScheduler, TaskScheduler
from .session import (
    ChatSession,
    FileSessionStore,
    InMemorySessionStore,
    Session,
    SessionStore,
)
from .settings import SceneKitSettings
from .transport import CallbackQuery, IncomingMessage, OriginMessage, Transport
from .viewport import MetaSpec, Viewport

__all__ = [
    "BACK",
    "CANCEL",
    "DISABLE_INFO_NOTIFICATIONS",
    "DISABLE_NOTIFICATIONS",
    "HIDE",
    "MAX_CALLBACK_BYTES",
    "RESTORE_DIALOGUE",
    "RESTORE_INIT",
    "RESTORE_META",
    "RESTORE_MISMATCH",
    "RestoreResult",
    "Turn",
    "apply_effect",
    "init_and_render",
    "restore_state",
    "ConfigurationError",
    "DuplicateSceneId",
    "DuplicateScenePrefix",
    "SceneKitError",
    "StorageError",
    "TransportError",
    "SceneHint",
    "canonical_json",
    "content_checksum",
    "InlineButton",
    "InlineKeyboard",
    "FileMetadataStore",
    "InMemoryMetadataStore",
    "MessageMetadata",
    "MetadataStore",
    "NoopMetadataStore",
    "CountingObserver",
    "RouterObserver",
    "Router",
    "RouterBuilder",
    "SceneRoute",
    "AnyText",
    "Bindings",
    "CallbackBinding",
    "ClearPrompt",
    "Command",
    "Ctx",
    "Effect",
    "ExactKey",
    "KeyPrefix",
    "MessageBinding",
    "Noop",
    "NoopWithSideEffects",
    "Notification",
    "Regex",
    "RenderPolicy",
    "Scene",
    "Snapshot",
    "Stay",
    "StayWithSideEffects",
    "SwitchScene",
    "TextPrefix",
    "View",
    "AsyncioScheduler",
    "TaskScheduler",
    "ChatSession",
    "FileSessionStore",
    "InMemorySessionStore",
    "Session",
    "SessionStore",
    "SceneKitSettings",
    "CallbackQuery",
    "IncomingMessage",
    "OriginMessage",
    "Transport",
    "MetaSpec",
    "Viewport",
]

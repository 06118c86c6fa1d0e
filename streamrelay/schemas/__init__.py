"""Beanie ODM schemas for MongoDB collections."""

from .init import init_beanie_odm
from .session import SessionDocument, StreamSession
from .session_runtime import (
    LaunchDiagnostics,
    PushTarget,
    PushTargetOutcome,
    SessionRuntime,
    TransitionRecord,
)
from .session_state import SessionKind, SessionState
from .session_store import BeanieSessionStore, SessionStore

__all__ = [
    "BeanieSessionStore",
    "LaunchDiagnostics",
    "PushTarget",
    "PushTargetOutcome",
    "SessionDocument",
    "SessionKind",
    "SessionRuntime",
    "SessionState",
    "SessionStore",
    "StreamSession",
    "TransitionRecord",
    "init_beanie_odm",
]

"""Session record and its ODM document."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import BaseModel, Field, field_validator
from pymongo import DESCENDING, IndexModel

from .schema_utils import parse_mongo_datetime
from .session_runtime import PushTarget, SessionRuntime, TransitionRecord
from .session_state import SessionKind, SessionState


class StreamSession(BaseModel):
    """A logical streaming job owned by a user.

    This is the shape the orchestrator works with; `SessionDocument` is how it
    is persisted.
    """

    session_id: str
    owner_id: str
    owner_login: str
    kind: SessionKind
    status: SessionState = SessionState.SCHEDULED

    source_ref: str
    destination_ref: str | None = None
    platform_id: str | None = None
    stream_key: str | None = None
    push_targets: list[PushTarget] = Field(default_factory=list)

    runtime: SessionRuntime = Field(default_factory=SessionRuntime)
    transitions: list[TransitionRecord] = Field(default_factory=list)

    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None

    version: int = 1

    @field_validator("created_at", "updated_at", "started_at", "ended_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    @property
    def process_name(self) -> str:
        return self.runtime.process_name or f"{self.owner_login}_{self.session_id}"


class SessionDocument(Document):
    """Session document model.

    The partial unique index on `owner_id` over the active states is what
    guarantees at most one starting/live session per owner.
    """

    session_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    owner_id: str
    owner_login: str
    kind: SessionKind
    status: SessionState = SessionState.SCHEDULED

    source_ref: str
    destination_ref: str | None = None
    platform_id: str | None = None
    stream_key: str | None = None
    push_targets: list[PushTarget] = Field(default_factory=list)

    runtime: SessionRuntime = Field(default_factory=SessionRuntime)
    transitions: list[TransitionRecord] = Field(default_factory=list)

    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None

    # Version control for optimistic locking
    version: int = Field(default=1)

    @field_validator("created_at", "updated_at", "started_at", "ended_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    @classmethod
    def from_session(cls, session: StreamSession) -> "SessionDocument":
        return cls(**session.model_dump())

    def to_session(self) -> StreamSession:
        return StreamSession.model_validate(self.model_dump(exclude={"id", "revision_id"}))

    class Settings:
        name = "stream_session"
        indexes = [
            [("session_id", 1)],  # unique handled by Indexed
            IndexModel(
                [("owner_id", 1)],
                partialFilterExpression={
                    "status": {"$in": [str(state) for state in SessionState.active_states()]},
                },
                unique=True,
                name="owner_id_active_unique",
            ),
            IndexModel(
                [("owner_id", 1), ("session_id", DESCENDING)],
                name="owner_id_session_id",
            ),
            IndexModel([("status", 1)], name="status"),
        ]

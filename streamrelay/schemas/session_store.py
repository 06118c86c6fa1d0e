"""Durable session state store.

`SessionStore` is the contract the orchestrator and the sweeper depend on;
`BeanieSessionStore` backs it with MongoDB. Every update is version checked,
and the partial unique index on active sessions is enforced by the database,
so a `DuplicateKeyError` on insert or update surfaces as `ConflictError`.
"""

from collections.abc import Iterable
from typing import Any, Protocol

from beanie.odm.operators.update.general import Set
from beanie.operators import LT, In
from loguru import logger
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from streamrelay.utils.app_errors import AppError, AppErrorCode, ConflictError, HttpStatusCode

from .schema_utils import utc_now
from .session import SessionDocument, StreamSession
from .session_state import SessionState


class SessionStore(Protocol):
    async def insert(self, session: StreamSession) -> StreamSession: ...

    async def get(self, session_id: str) -> StreamSession | None: ...

    async def find_active_for_owner(self, owner_id: str) -> StreamSession | None: ...

    async def find_in_states(
        self,
        states: Iterable[SessionState],
        owner_id: str | None = None,
    ) -> list[StreamSession]: ...

    async def list_sessions(
        self,
        owner_id: str,
        states: Iterable[SessionState] | None = None,
        cursor: str | None = None,
        page_size: int = 20,
    ) -> tuple[list[StreamSession], str | None]: ...

    async def update(self, session: StreamSession, updates: dict[str, Any]) -> StreamSession: ...

    async def delete(self, session_id: str) -> bool: ...


def prepare_update(session: StreamSession, updates: dict[str, Any]) -> tuple[StreamSession, dict[str, Any]]:
    """Apply `updates` to a copy of `session`, bumping `version` and `updated_at`.

    Returns the updated copy and the field values to persist.
    """
    if "version" in updates:
        raise AppError(
            AppErrorCode.E_INVALID_REQUEST,
            "updates must not include version",
            HttpStatusCode.BAD_REQUEST,
        )

    fields = dict(updates)
    fields.setdefault("updated_at", utc_now())
    fields["version"] = session.version + 1

    updated = session.model_copy(update=fields, deep=True)
    return updated, {name: getattr(updated, name) for name in fields}


def version_conflict(session: StreamSession, current: StreamSession | None) -> AppError:
    error_msg = (
        f"Version conflict on session {session.session_id}: expected version {session.version}, "
        f"current version {current.version if current else 'N/A'}, "
        f"current status {current.status if current else 'N/A'}"
    )
    logger.warning(error_msg)
    return AppError(
        errcode=AppErrorCode.E_SESSION_VERSION_CONFLICT,
        errmesg=error_msg,
        status_code=HttpStatusCode.CONFLICT,
    )


def active_session_conflict(owner_id: str) -> ConflictError:
    return ConflictError(
        f"Active session already exists for owner {owner_id}",
        details={"owner_id": owner_id},
    )


class BeanieSessionStore:
    """MongoDB session store built on the `SessionDocument` ODM model."""

    async def insert(self, session: StreamSession) -> StreamSession:
        document = SessionDocument.from_session(session)
        logger.debug(f"Inserting session {session.session_id} for owner {session.owner_id}")
        try:
            await document.insert()
        except DuplicateKeyError as e:
            logger.warning(f"Duplicate key inserting session for owner {session.owner_id}: {e}")
            raise active_session_conflict(session.owner_id) from e
        return session

    async def get(self, session_id: str) -> StreamSession | None:
        document = await SessionDocument.find_one(SessionDocument.session_id == session_id)
        return document.to_session() if document else None

    async def find_active_for_owner(self, owner_id: str) -> StreamSession | None:
        document = await SessionDocument.find_one(
            SessionDocument.owner_id == owner_id,
            In(SessionDocument.status, SessionState.active_states()),
        )
        return document.to_session() if document else None

    async def find_in_states(
        self,
        states: Iterable[SessionState],
        owner_id: str | None = None,
    ) -> list[StreamSession]:
        conditions: list[Any] = [In(SessionDocument.status, list(states))]
        if owner_id:
            conditions.append(SessionDocument.owner_id == owner_id)

        documents = await SessionDocument.find(*conditions).to_list()
        return [document.to_session() for document in documents]

    async def list_sessions(
        self,
        owner_id: str,
        states: Iterable[SessionState] | None = None,
        cursor: str | None = None,
        page_size: int = 20,
    ) -> tuple[list[StreamSession], str | None]:
        conditions: list[Any] = [SessionDocument.owner_id == owner_id]
        if states:
            conditions.append(In(SessionDocument.status, list(states)))
        # Session ids are ULIDs, so they sort by creation time
        if cursor:
            conditions.append(LT(SessionDocument.session_id, cursor))

        documents = (
            await SessionDocument.find(*conditions)
            .sort([("session_id", DESCENDING)])  # type: ignore[list-item]
            .limit(page_size + 1)
            .to_list()
        )

        next_cursor = None
        if len(documents) > page_size:
            documents = documents[:page_size]
            next_cursor = documents[-1].session_id

        return [document.to_session() for document in documents], next_cursor

    async def update(self, session: StreamSession, updates: dict[str, Any]) -> StreamSession:
        updated, fields = prepare_update(session, updates)

        try:
            result = await SessionDocument.find(
                SessionDocument.session_id == session.session_id,
                SessionDocument.version == session.version,
            ).update(Set(fields))  # type: ignore[arg-type]
        except DuplicateKeyError as e:
            logger.warning(f"Duplicate key updating session {session.session_id}: {e}")
            raise active_session_conflict(session.owner_id) from e

        if not result or result.modified_count == 0:
            raise version_conflict(session, await self.get(session.session_id))

        logger.debug(
            f"Session {session.session_id} updated "
            f"(version {session.version} -> {updated.version}): {sorted(updates)}"
        )
        return updated

    async def delete(self, session_id: str) -> bool:
        result = await SessionDocument.find(SessionDocument.session_id == session_id).delete()
        return bool(result and result.deleted_count)


__all__ = [
    "BeanieSessionStore",
    "SessionStore",
    "active_session_conflict",
    "prepare_update",
    "version_conflict",
]

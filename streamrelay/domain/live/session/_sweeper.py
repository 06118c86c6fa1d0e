"""Reconciliation of recorded session state with what actually runs.

The startup sweep fails sessions whose backing process disappeared while the
service was down. The shutdown sweep stops every active session so no remote
process is orphaned when the service exits; it is bounded by a timeout and
reports whatever it managed to do before the deadline.
"""

import asyncio
from datetime import timedelta

from loguru import logger

from streamrelay.schemas import LaunchDiagnostics, SessionState, StreamSession
from streamrelay.schemas.schema_utils import utc_now
from streamrelay.utils.app_errors import AppError, RemoteExecutionError

from ._base import BaseService
from ._stop import StopOperations
from .session_models import SessionSettings, SweepMode, SweepReport

STARTUP_SWEEP_STATES = [SessionState.STARTING, SessionState.LIVE, SessionState.STOPPING]
SHUTDOWN_SWEEP_STATES = [SessionState.STARTING, SessionState.LIVE, SessionState.STOPPING]

# A start in flight in another worker is still settling; leave it alone for a while
DEFAULT_STARTING_GRACE_SECONDS = 60


class SessionSweeper(BaseService):
    """Aligns declared session state with observed remote-process reality."""

    def __init__(
        self,
        store,
        supervisor,
        media,
        settings: SessionSettings,
        starting_grace_seconds: float = DEFAULT_STARTING_GRACE_SECONDS,
    ):
        super().__init__(store, supervisor, media, settings)
        self._stop = StopOperations(store, supervisor, media, settings)
        self.starting_grace_seconds = starting_grace_seconds

    async def reconcile(
        self,
        mode: SweepMode,
        owner_id: str | None = None,
        timeout: float | None = None,
    ) -> SweepReport:
        """Run one sweep over all owners, or over `owner_id` only.

        With a timeout, sessions not handled before the deadline are left as
        they are and the report is returned with `timed_out` set.
        """
        report = SweepReport(mode=mode, owner_id=owner_id)
        states = STARTUP_SWEEP_STATES if mode == SweepMode.STARTUP else SHUTDOWN_SWEEP_STATES
        sessions = await self.store.find_in_states(states, owner_id=owner_id)
        report.checked = len(sessions)
        logger.info(f"{mode} sweep: {len(sessions)} session(s) to reconcile" + (f" for {owner_id}" if owner_id else ""))

        handler = self._reconcile_on_startup if mode == SweepMode.STARTUP else self._reconcile_on_shutdown
        sweep = asyncio.gather(*(self._guarded(handler, session, report) for session in sessions))
        try:
            await asyncio.wait_for(sweep, timeout=timeout)
        except TimeoutError:
            report.timed_out = True
            logger.error(f"{mode} sweep timed out after {timeout}s, partial report: {report.model_dump()}")

        logger.info(
            f"{mode} sweep done: promoted={len(report.promoted)} failed={len(report.failed)} "
            f"stopped={len(report.stopped)} left_stopping={len(report.left_stopping)} errors={len(report.errors)}"
        )
        return report

    async def _guarded(self, handler, session: StreamSession, report: SweepReport) -> None:
        try:
            await handler(session, report)
        except AppError as e:
            logger.warning(f"Sweep of session {session.session_id} failed: {e.errmesg}")
            report.errors.append(f"{session.session_id}: {e.errmesg}")

    async def _observe(self, session: StreamSession) -> bool:
        try:
            return await self._observe_running(session)
        except RemoteExecutionError as e:
            # An unreachable host cannot vouch for the process
            logger.warning(f"Could not observe session {session.session_id}, treating as not running: {e.errmesg}")
            return False

    def _within_grace(self, session: StreamSession) -> bool:
        return (
            session.status == SessionState.STARTING
            and utc_now() - session.updated_at < timedelta(seconds=self.starting_grace_seconds)
        )

    async def _reconcile_on_startup(self, session: StreamSession, report: SweepReport) -> None:
        if self._within_grace(session):
            logger.info(f"Session {session.session_id} started recently, not sweeping it")
            return

        running = await self._observe(session)

        if session.status == SessionState.STOPPING:
            if running:
                report.left_stopping.append(session.session_id)
                return
            await self.update_session_state(session, SessionState.STOPPED, reason="startup sweep: process gone")
            report.stopped.append(session.session_id)
            return

        if running:
            if session.status != SessionState.STARTING:
                return
            session = await self.update_session_state(
                session, SessionState.LIVE, reason="startup sweep: process running"
            )
            if not session.runtime.stop_requested:
                report.promoted.append(session.session_id)
                return
            # The stop arrived while the interrupted start was in flight
            logger.info(f"Session {session.session_id} had a pending stop request, stopping it")
            try:
                await self._stop.terminate(session, reason="startup sweep: stop requested while starting")
            except RemoteExecutionError as e:
                report.left_stopping.append(session.session_id)
                report.errors.append(f"{session.session_id}: {e.errmesg}")
                return
            report.stopped.append(session.session_id)
            return

        await self.update_session_state(
            session,
            SessionState.FAILED,
            reason="startup sweep: process not found",
            runtime_update={
                "diagnostics": LaunchDiagnostics(
                    command=session.runtime.command,
                    match_count=0,
                    error=f"backing process not found by startup sweep (was {session.status})",
                )
            },
            set_ended_at=True,
        )
        report.failed.append(session.session_id)

    async def _reconcile_on_shutdown(self, session: StreamSession, report: SweepReport) -> None:
        try:
            await self._stop.terminate(session, reason="shutdown sweep")
        except RemoteExecutionError as e:
            session = await self._reload(session)
            if session.status == SessionState.STOPPING and not await self._observe(session):
                await self.update_session_state(session, SessionState.STOPPED, reason="shutdown sweep: process gone")
            else:
                report.left_stopping.append(session.session_id)
                report.errors.append(f"{session.session_id}: {e.errmesg}")
                return
        report.stopped.append(session.session_id)

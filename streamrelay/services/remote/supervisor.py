"""Remote process supervisor.

Backing processes run inside detached `screen` sessions named after the
session (`{owner_login}_{session_id}`), so they can be found and terminated by
name alone. Nothing here retries: a blind retry of `start` could spawn a
second transcoder for the same session.
"""

import shlex
from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger

from streamrelay.utils.app_errors import RemoteExecutionError

from .executor import CommandExecutor, CommandResult


@dataclass(frozen=True)
class ProcessCheck:
    """Result of a host-side process listing."""

    count: int
    check_command: str
    output: str

    @property
    def running(self) -> bool:
        return self.count > 0


def build_start_command(process_name: str, invocation: str) -> str:
    # No trailing shell after the invocation: the screen session ends with the transcoder
    return f"screen -dmS {shlex.quote(process_name)} bash -c {shlex.quote(invocation)}"


LISTING_COMMAND = "ps -eo args="


def build_check_command(process_name: str, match_hints: Sequence[str] = ()) -> str:
    filters = [f"grep -F -e {shlex.quote(process_name)}"]
    filters += [f"grep -F -e {shlex.quote(hint)}" for hint in match_hints if hint]
    # Drop the pipeline itself: its grep stages and the remote shell running it
    own_lines = f"grep -v -e {shlex.quote('^grep -F -e ')} -e {shlex.quote(LISTING_COMMAND + ' |')}"
    return " | ".join([LISTING_COMMAND, *filters, own_lines, "wc -l"])


def build_stop_command(process_name: str) -> str:
    match = (
        "awk -v name=" + shlex.quote(process_name) + " "
        + shlex.quote('{ s = $1; if (sub(/^[0-9]+\\./, "", s) && s == name) print $1 }')
    )
    return f"screen -ls | {match} | xargs -r -I{{}} screen -X -S {{}} quit"


class RemoteProcessSupervisor:
    """Starts, inspects and terminates named backing processes on remote hosts."""

    def __init__(self, executor: CommandExecutor):
        self._executor = executor

    async def start(self, host_id: str, process_name: str, invocation: str) -> CommandResult:
        """Launch `invocation` in a detached session named `process_name`.

        Starting a name that already exists is not an error here; duplicate
        detection belongs to the orchestrator.
        """
        command = build_start_command(process_name, invocation)
        result = await self._executor.run(host_id, command)
        if not result.ok:
            raise RemoteExecutionError(
                f"Failed to launch {process_name} on {host_id}",
                details={
                    "host_id": host_id,
                    "exit_status": result.exit_status,
                    "stderr": result.stderr.strip()[:500],
                },
            )

        logger.info(f"Launched {process_name} on {host_id}")
        return result

    async def inspect(
        self,
        host_id: str,
        process_name: str,
        match_hints: Sequence[str] = (),
    ) -> ProcessCheck:
        check_command = build_check_command(process_name, match_hints)
        result = await self._executor.run(host_id, check_command)

        output = result.stdout.strip()
        try:
            count = int(output.splitlines()[-1]) if output else 0
        except ValueError:
            logger.warning(f"Unexpected process listing output on {host_id}: {output[:200]}")
            count = 0

        logger.debug(f"{process_name} on {host_id}: {count} matching process(es)")
        return ProcessCheck(count=count, check_command=check_command, output=output)

    async def is_running(
        self,
        host_id: str,
        process_name: str,
        match_hints: Sequence[str] = (),
    ) -> int:
        """Count host processes matching the name and hints; `> 0` means running.

        Best effort: a process that is still initializing may not be listed yet.
        """
        check = await self.inspect(host_id, process_name, match_hints)
        return check.count

    async def stop(self, host_id: str, process_name: str) -> ProcessCheck:
        """Terminate the detached session named `process_name`.

        A session that no longer exists counts as stopped. Raises
        `RemoteExecutionError` if the process is still listed afterwards.
        """
        result = await self._executor.run(host_id, build_stop_command(process_name))
        if not result.ok:
            logger.warning(
                f"Stop command for {process_name} on {host_id} exited {result.exit_status}: "
                f"{result.stderr.strip()[:200]}"
            )

        check = await self.inspect(host_id, process_name)
        if check.running:
            raise RemoteExecutionError(
                f"{process_name} still running on {host_id} after stop",
                details={"host_id": host_id, "match_count": check.count},
            )

        logger.info(f"Stopped {process_name} on {host_id}")
        return check

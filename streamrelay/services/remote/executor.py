"""Remote command execution over the system `ssh` client."""

import asyncio
from dataclasses import dataclass
from typing import Protocol

from loguru import logger

from streamrelay.app_config import get_app_environ_config
from streamrelay.config import config
from streamrelay.utils.app_errors import RemoteExecutionError

# ssh exits with 255 when the connection itself failed
SSH_TRANSPORT_FAILURE = 255


@dataclass(frozen=True)
class CommandResult:
    exit_status: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class CommandExecutor(Protocol):
    async def run(self, host_id: str, command: str, *, timeout: float | None = None) -> CommandResult: ...


@dataclass(frozen=True)
class RemoteHost:
    host_id: str
    address: str
    user: str | None = None
    port: int = 22

    @classmethod
    def parse(cls, host_id: str, spec: str) -> "RemoteHost":
        """Parse a `user@address[:port]` host spec."""
        user, _, hostport = spec.strip().rpartition("@")
        address, sep, port = hostport.partition(":")
        if not address or (sep and not port.isdigit()):
            raise RemoteExecutionError(
                f"Invalid host spec for {host_id}", details={"host_id": host_id}
            )
        return cls(host_id=host_id, address=address, user=user or None, port=int(port) if port else 22)

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.address}" if self.user else self.address


class SshCommandExecutor:
    """Runs shell commands on remote hosts, one `ssh` invocation per command.

    Hosts are resolved from `REMOTE_HOST_<ID>` configuration unless passed in
    explicitly. Transport failures (unknown host, refused connection, auth
    failure, timeout) are raised as `RemoteExecutionError`; the remote
    command's own exit status is returned untouched.
    """

    def __init__(
        self,
        hosts: dict[str, RemoteHost] | None = None,
        *,
        identity_file: str | None = None,
        connect_timeout: int | None = None,
        command_timeout: float | None = None,
        ssh_binary: str = "ssh",
    ):
        cfg = get_app_environ_config()
        self._hosts = dict(hosts or {})
        self._identity_file = identity_file if identity_file is not None else cfg.REMOTE_SSH_IDENTITY_FILE
        self._connect_timeout = connect_timeout or cfg.REMOTE_SSH_CONNECT_TIMEOUT_SECONDS
        self._command_timeout = command_timeout or cfg.REMOTE_COMMAND_TIMEOUT_SECONDS
        self._ssh_binary = ssh_binary

    def resolve_host(self, host_id: str) -> RemoteHost:
        host = self._hosts.get(host_id)
        if host is not None:
            return host

        spec = config.get_remote_host(host_id)
        if not spec:
            raise RemoteExecutionError(f"Unknown remote host: {host_id}", details={"host_id": host_id})

        host = RemoteHost.parse(host_id, spec)
        self._hosts[host_id] = host
        return host

    def build_ssh_argv(self, host: RemoteHost, command: str) -> list[str]:
        argv = [
            self._ssh_binary,
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={self._connect_timeout}",
            "-p", str(host.port),
        ]  # fmt: skip
        if self._identity_file:
            argv += ["-i", self._identity_file]
        argv += [host.destination, "--", command]
        return argv

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            proc.kill()
        await proc.wait()

    async def run(self, host_id: str, command: str, *, timeout: float | None = None) -> CommandResult:
        host = self.resolve_host(host_id)
        argv = self.build_ssh_argv(host, command)
        timeout = timeout or self._command_timeout

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise RemoteExecutionError(
                f"ssh client not found: {self._ssh_binary}", details={"host_id": host_id}
            ) from e

        try:
            stdout_raw, stderr_raw = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError as e:
            await self._kill(proc)
            raise RemoteExecutionError(
                f"Remote command timed out after {timeout}s on {host_id}",
                details={"host_id": host_id},
            ) from e
        except asyncio.CancelledError:
            # Cancelled callers, such as a sweep past its deadline, still reap the ssh client
            logger.warning(f"ssh command on {host_id} cancelled, killing the client")
            await asyncio.shield(self._kill(proc))
            raise

        result = CommandResult(
            exit_status=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout_raw.decode("utf-8", errors="replace"),
            stderr=stderr_raw.decode("utf-8", errors="replace"),
        )

        if result.exit_status == SSH_TRANSPORT_FAILURE:
            logger.warning(f"ssh transport failure on {host_id}: {result.stderr.strip()}")
            raise RemoteExecutionError(
                f"Remote host {host_id} unreachable",
                details={"host_id": host_id, "stderr": result.stderr.strip()[:500]},
            )

        logger.debug(f"ssh {host_id} exit={result.exit_status}")
        return result

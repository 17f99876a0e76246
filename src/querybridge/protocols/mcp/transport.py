"""StdioTransport: a child process speaking line-delimited JSON-RPC.

stdin/stdout carry one JSON object per line.  stderr is out-of-band: every
line is forwarded to the ``querybridge.server`` logger, and the first line
containing the configured ready marker releases :meth:`StdioTransport.connect`.

Some servers also print log lines on stdout.  Lines following the bracketed
level-tag convention (``[INFO] ...``, ``[ERROR] ...``, see
:data:`LOG_LINE_PATTERN`) are treated as logs and never parsed as JSON.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from querybridge.protocols.errors import (
    ProcessSpawnError,
    StartupTimeoutError,
    TransportClosedError,
)
from querybridge.protocols.mcp.models import ExitInfo

logger = logging.getLogger(__name__)
server_logger = logging.getLogger("querybridge.server")

LOG_LINE_PATTERN = re.compile(r"^\[(INFO|ERROR|WARN|WARNING|DEBUG)\]")

# Query results can be large; asyncio's default line limit is 64 KiB.
_STREAM_LIMIT = 16 * 1024 * 1024
_TERMINATE_GRACE = 3.0

MessageHandler = Callable[[dict[str, Any]], None]
ExitHandler = Callable[[ExitInfo], None]
ErrorHandler = Callable[[Exception], None]


class StdioTransport:
    """Owns one MCP server subprocess and its three pipes.

    Incoming JSON objects are pushed to ``on_message``; the transport does
    no request/response matching itself.
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        ready_marker: str | None = None,
        startup_timeout: float = 10.0,
        on_message: MessageHandler | None = None,
        on_exit: ExitHandler | None = None,
        on_error: ErrorHandler | None = None,
        server_name: str = "server",
    ) -> None:
        self._command = command
        self._args = list(args)
        self._env = dict(env) if env is not None else None
        self._cwd = cwd
        self._ready_marker = ready_marker
        self._startup_timeout = startup_timeout
        self._on_message = on_message
        self._on_exit = on_exit
        self._on_error = on_error
        self._server_name = server_name
        self._process: asyncio.subprocess.Process | None = None
        self._ready: asyncio.Event | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    async def connect(self) -> None:
        """Launch the subprocess and wait for its readiness signal."""
        if self._process is not None:
            msg = "Transport already connected"
            raise RuntimeError(msg)

        logger.info("Starting MCP server: %s %s", self._command, " ".join(self._args))
        try:
            process = await asyncio.create_subprocess_exec(
                self._command,
                *self._args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env,
                cwd=self._cwd,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            raise ProcessSpawnError(self._command, str(exc)) from exc

        self._process = process
        self._ready = asyncio.Event()
        exit_task = asyncio.create_task(self._watch_exit(process))
        self._tasks = [
            asyncio.create_task(self._read_stdout(process)),
            asyncio.create_task(self._read_stderr(process)),
            exit_task,
        ]

        if self._ready_marker is None:
            return

        ready_task = asyncio.create_task(self._ready.wait())
        done, _ = await asyncio.wait(
            {ready_task, exit_task},
            timeout=self._startup_timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if ready_task in done:
            return

        ready_task.cancel()
        await self.close()
        if exit_task in done:
            detail = f"server exited with {ExitInfo.from_returncode(process.returncode)} before signalling readiness"
            raise TransportClosedError(detail)
        raise StartupTimeoutError(self._startup_timeout)

    async def send(self, data: dict[str, Any]) -> None:
        """Write one JSON line to stdin."""
        process = self._process
        if process is None or process.stdin is None or process.returncode is not None:
            raise TransportClosedError("server process is not running")
        line = json.dumps(data) + "\n"
        try:
            # write() buffers the whole line before any await, so concurrent
            # senders never interleave within a line.
            process.stdin.write(line.encode())
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise TransportClosedError(str(exc)) from exc

    async def close(self) -> None:
        """Terminate the subprocess.  Safe to call more than once."""
        process = self._process
        if process is None:
            return
        self._process = None

        if process.returncode is None:
            if process.stdin is not None and not process.stdin.is_closing():
                process.stdin.close()
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=_TERMINATE_GRACE)
            except TimeoutError:
                logger.warning("MCP server %s ignored SIGTERM, killing it", self._server_name)
                process.kill()
                await process.wait()

        tasks, self._tasks = self._tasks, []
        if tasks:
            # A grandchild holding the pipes open must not block shutdown.
            _, pending = await asyncio.wait(tasks, timeout=_TERMINATE_GRACE)
            for task in pending:
                task.cancel()

    # ------------------------------------------------------------------
    # Reader tasks
    # ------------------------------------------------------------------

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        while True:
            try:
                raw = await process.stdout.readline()
            except ValueError as exc:
                # Line longer than the stream limit; the reader has already
                # dropped it, so keep going.
                logger.warning("Dropped oversized line from %s: %s", self._server_name, exc)
                self._emit_error(exc)
                continue
            if not raw:
                return
            self._handle_stdout_line(raw.decode(errors="replace").strip())

    def _handle_stdout_line(self, line: str) -> None:
        if not line:
            return
        if LOG_LINE_PATTERN.match(line):
            server_logger.debug("[%s] %s", self._server_name, line)
            return
        try:
            message = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.warning("Failed to parse server message (%s): %s", exc, line)
            return
        if not isinstance(message, dict):
            logger.warning("Ignoring non-object JSON from server: %s", line)
            return
        if self._on_message is not None:
            self._on_message(message)

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None
        while True:
            try:
                raw = await process.stderr.readline()
            except ValueError:
                continue
            if not raw:
                return
            line = raw.decode(errors="replace").strip()
            if not line:
                continue
            server_logger.info("[%s] %s", self._server_name, line)
            if (
                self._ready is not None
                and self._ready_marker is not None
                and self._ready_marker in line
            ):
                self._ready.set()

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        info = ExitInfo.from_returncode(returncode)
        logger.info("MCP server %s exited with %s", self._server_name, info)
        if self._on_exit is not None:
            self._on_exit(info)

    def _emit_error(self, exc: Exception) -> None:
        if self._on_error is not None:
            self._on_error(exc)

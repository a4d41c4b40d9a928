"""
Runs commands with the loaded environment.

Every child inherits the process environment, so values exported by a
provider are visible to it. Child output is streamed line by line to the
logger. On SIGINT or SIGTERM children get ``shutdown_timeout`` to exit
before they are killed.
"""

import asyncio
import shlex
import signal
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional, Sequence

import structlog

from ..config import ExecMode
from ..exceptions import FailedToError, RequiredError
from ..logger import get_logger

STREAM_LIMIT = 1024 * 1024


@dataclass
class Command:
    command: str
    args: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return shlex.join([self.command, *self.args])


def split_command(argv: Sequence[str]) -> Command:
    """First element is the command, the rest its arguments."""
    if not argv:
        raise RequiredError("command")
    return Command(argv[0], list(argv[1:]))


def parse_commands(commands: Sequence[str]) -> List[Command]:
    """Parse ``-c`` command strings using shell quoting rules."""
    return [split_command(shlex.split(command)) for command in commands]


class CommandRunner:
    """Run one or more commands, concurrently or one after the other."""

    def __init__(
        self,
        exec_mode: ExecMode = ExecMode.CONCURRENT,
        sequential_delay: timedelta = timedelta(seconds=1),
        shutdown_timeout: timedelta = timedelta(seconds=30),
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ):
        self.exec_mode = ExecMode(exec_mode)
        self.sequential_delay = sequential_delay
        self.shutdown_timeout = shutdown_timeout
        self.logger = logger or get_logger()

        self.killed = False
        self._processes: List[asyncio.subprocess.Process] = []
        self._shutdown: Optional[asyncio.Task] = None

    def run(self, commands: Sequence[Command]) -> int:
        """Run ``commands`` and return the exit code for the CLI."""
        return asyncio.run(self._run(list(commands)))

    async def _run(self, commands: List[Command]) -> int:
        loop = asyncio.get_running_loop()
        signals = (signal.SIGINT, signal.SIGTERM)
        for sig in signals:
            loop.add_signal_handler(sig, self._on_signal)

        tasks: List[asyncio.Future] = []
        try:
            if len(commands) == 1:
                exit_code = await self.run_command(commands[0])
                return 1 if self.killed else exit_code

            if self.exec_mode == ExecMode.SEQUENTIAL:
                exit_codes = []
                for i, command in enumerate(commands):
                    if i:
                        await asyncio.sleep(self.sequential_delay.total_seconds())
                    exit_codes.append(await self.run_command(command))
            else:
                tasks = [asyncio.ensure_future(self.run_command(c)) for c in commands]
                exit_codes = await asyncio.gather(*tasks)
        finally:
            for sig in signals:
                loop.remove_signal_handler(sig)
            if self._shutdown is not None and not self._shutdown.done():
                self._shutdown.cancel()

            # A command that failed to start takes the rest down with it.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self._kill_remaining()

        failed = [str(c) for c, code in zip(commands, exit_codes) if code != 0]
        if failed:
            self.logger.error("failed to run commands", commands=failed)
            return 1

        return 1 if self.killed else 0

    async def run_command(self, command: Command) -> int:
        try:
            process = await asyncio.create_subprocess_exec(
                command.command,
                *command.args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise FailedToError(f"start command {command.command!r}", e) from e

        self._processes.append(process)

        await asyncio.gather(
            self._stream(process.stdout, "stdout", command),
            self._stream(process.stderr, "stderr", command),
        )
        exit_code = await process.wait()

        if exit_code != 0:
            self.logger.error(
                "command exited with non-zero exit code",
                command=str(command),
                exit_code=exit_code,
            )

        return exit_code

    async def _kill_remaining(self) -> None:
        for process in self._processes:
            if process.returncode is None:
                process.kill()
                await process.wait()

    async def _stream(
        self, stream: asyncio.StreamReader, output_type: str, command: Command
    ) -> None:
        async for line in stream:
            self.logger.info(
                line.decode(errors="replace").rstrip("\r\n"),
                output_type=output_type,
                command=command.command,
            )

    def _on_signal(self) -> None:
        if self._shutdown is None:
            self.logger.info(
                "shutting down", timeout=self.shutdown_timeout.total_seconds()
            )
            self._shutdown = asyncio.ensure_future(self._kill_after_timeout())

    async def _kill_after_timeout(self) -> None:
        await asyncio.sleep(self.shutdown_timeout.total_seconds())

        for process in self._processes:
            if process.returncode is None:
                process.kill()

        self.killed = True
        self.logger.info(
            "command killed after exceeding timeout",
            timeout=self.shutdown_timeout.total_seconds(),
        )

"""
Shell command runner for shell_command actions.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShellResult:
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int


class ShellRunner(ABC):
    @abstractmethod
    async def run(self, command: str, timeout: Optional[float] = None) -> ShellResult:
        """Run a command. ``timeout`` is in seconds; None waits indefinitely."""


class SubprocessShellRunner(ShellRunner):
    """Runs commands with the system shell via asyncio subprocesses."""

    def __init__(self, cwd: Optional[str] = None):
        self.cwd = cwd

    async def run(self, command: str, timeout: Optional[float] = None) -> ShellResult:
        start = time.monotonic()
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
        )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.debug(f"Shell command exited with {process.returncode} in {duration_ms}ms")

        return ShellResult(
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            exit_code=process.returncode,
            duration_ms=duration_ms,
        )

"""opencode_mcp.bridge.invoker

Lancement et supervision de l'exécutable externe (`opencode-cli`).

Couche I/O:
- un sous-processus par invocation, jamais réutilisé
- stdout / stderr exposés comme deux `asyncio.StreamReader` indépendants
- un watchdog tue le groupe de processus quand le délai expire
- l'annulation de l'appelant (`terminate`) tue aussi le processus: pas d'orphelins
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from typing import Sequence

from ..core.constants import DEFAULT_TIMEOUT_SEC
from ..core.exceptions import CommandLaunchError

logger = logging.getLogger(__name__)

# Limite interne des StreamReader (le découpage en lignes est fait par events.iter_lines)
DEFAULT_STREAM_LIMIT = 8 * 1024 * 1024

# Code rapporté quand le processus a été tué (délai, annulation ou signal)
KILLED_EXIT_CODE = -1

_USE_PROCESS_GROUP = os.name == "posix"


@dataclass(frozen=True)
class Completion:
    exit_code: int
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.cancelled


@dataclass(frozen=True)
class CommandOutput:
    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False


class RunningCommand:
    """Processus démarré: flux stdout/stderr + signal de fin.

    `wait()` rend la main quand le processus est terminé (normalement ou tué par
    le watchdog). `terminate()` est idempotent.
    """

    def __init__(self, process: asyncio.subprocess.Process, *, timeout_s: float, stdin: str = "") -> None:
        self.process = process
        assert process.stdout is not None
        assert process.stderr is not None
        self.stdout: asyncio.StreamReader = process.stdout
        self.stderr: asyncio.StreamReader = process.stderr
        self.timeout_s = timeout_s
        self._timed_out = False
        self._cancelled = False
        self._stdin_task = asyncio.create_task(self._feed_stdin(stdin))
        self._watchdog = asyncio.create_task(self._watch())

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def done(self) -> bool:
        return self._watchdog.done()

    async def _feed_stdin(self, data: str) -> None:
        stdin = self.process.stdin
        if stdin is None:
            return
        try:
            if data:
                stdin.write(data.encode("utf-8"))
                await stdin.drain()
            stdin.close()
        except (BrokenPipeError, ConnectionResetError):
            # Le processus a fermé son stdin sans tout lire
            pass

    async def _watch(self) -> Completion:
        try:
            await asyncio.wait_for(self.process.wait(), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            self._timed_out = True
            logger.warning("⏱️ Délai de %ss dépassé, arrêt du processus %s", self.timeout_s, self.process.pid)
            self._kill()
            await self.process.wait()
        return self._completion()

    def _completion(self) -> Completion:
        returncode = self.process.returncode
        if self._timed_out or self._cancelled or returncode is None or returncode < 0:
            exit_code = KILLED_EXIT_CODE
        else:
            exit_code = int(returncode)
        return Completion(exit_code=exit_code, timed_out=self._timed_out, cancelled=self._cancelled)

    def _kill(self) -> None:
        if self.process.returncode is not None:
            return
        try:
            if _USE_PROCESS_GROUP:
                os.killpg(self.process.pid, signal.SIGKILL)
            else:
                self.process.kill()
        except ProcessLookupError:
            pass

    async def wait(self) -> Completion:
        # shield: l'annulation de l'appelant ne doit pas annuler le watchdog
        return await asyncio.shield(self._watchdog)

    async def terminate(self) -> Completion:
        """Tue le processus s'il tourne encore et attend sa fin."""
        if not self._watchdog.done():
            if not self._timed_out:
                self._cancelled = True
            logger.info("🛑 Arrêt du processus %s (annulation)", self.process.pid)
            self._kill()
        if not self._stdin_task.done():
            self._stdin_task.cancel()
        return await asyncio.shield(self._watchdog)


class CommandInvoker:
    """Démarre l'exécutable cible avec une durée de vie bornée."""

    def __init__(
        self,
        executable: str,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_SEC,
        stream_limit: int = DEFAULT_STREAM_LIMIT,
    ) -> None:
        self.executable = executable
        self.timeout_s = float(timeout_s)
        self.stream_limit = int(stream_limit)

    async def start(
        self,
        argv: Sequence[str],
        *,
        stdin: str = "",
        cwd: str | None = None,
        timeout_s: float | None = None,
    ) -> RunningCommand:
        """Lance `executable argv...`.

        Raises:
            CommandLaunchError: exécutable introuvable / non exécutable, cwd invalide.
        """

        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd or None,
                limit=self.stream_limit,
                start_new_session=_USE_PROCESS_GROUP,
            )
        except OSError as e:
            logger.error("❌ Impossible de démarrer %s: %s", self.executable, e)
            raise CommandLaunchError(
                message=f"failed to start {self.executable}: {e.strerror or e}",
                executable=self.executable,
                cwd=cwd,
            ) from e

        logger.info("🚀 %s %s (pid=%s, cwd=%s)", self.executable, " ".join(argv[:3]), process.pid, cwd or ".")
        return RunningCommand(
            process,
            timeout_s=self.timeout_s if timeout_s is None else float(timeout_s),
            stdin=stdin,
        )

    async def run_command(
        self,
        argv: Sequence[str],
        *,
        stdin: str = "",
        cwd: str | None = None,
        timeout_s: float | None = None,
    ) -> CommandOutput:
        """Exécute jusqu'au bout et collecte stdout / stderr complets."""

        running = await self.start(argv, stdin=stdin, cwd=cwd, timeout_s=timeout_s)
        stdout_task = asyncio.create_task(running.stdout.read())
        stderr_task = asyncio.create_task(running.stderr.read())
        try:
            completion = await running.wait()
            stdout, stderr = await asyncio.gather(stdout_task, stderr_task)
        finally:
            if not running.done:
                await running.terminate()
            for task in (stdout_task, stderr_task):
                if not task.done():
                    task.cancel()

        return CommandOutput(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=completion.exit_code,
            timed_out=completion.timed_out,
        )

#!/usr/bin/env python3
"""Fire-and-forget alarm playback: an audio file through a system player, or the terminal bell."""
from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import sys
from typing import Callable, Optional

from constants import AUDIO_PLAYERS, BELL_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


def _terminal_bell() -> None:
    sys.stdout.write("\a")
    sys.stdout.flush()


def find_audio_player() -> Optional[list[str]]:
    """Returns the command prefix of the first audio player found on PATH."""
    for name, args in AUDIO_PLAYERS.items():
        executable = shutil.which(name)
        if executable:
            return [executable, *args]
    return None


class AlarmPlayer:
    """
    Plays the alarm in a background task so callers never wait on audio.

    ``play`` while already playing restarts the alarm; ``stop`` when nothing
    is playing does nothing. Playback ends on its own after ``duration``.
    """

    def __init__(
        self,
        duration: float,
        *,
        bell: Callable[[], None] = _terminal_bell,
        bell_interval: float = BELL_INTERVAL_SECONDS,
        player_command: Optional[list[str]] = None,
    ) -> None:
        self.duration = duration
        self._bell = bell
        self._bell_interval = bell_interval
        self._player_command = player_command
        self._task: Optional[asyncio.Task] = None

    @property
    def playing(self) -> bool:
        return self._task is not None and not self._task.done()

    def play(self, path: Optional[str] = None) -> None:
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run(path), name="alarm-playback")

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def aclose(self) -> None:
        """Stops playback and waits for the background task to finish cleaning up."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self, path: Optional[str]) -> None:
        deadline = asyncio.get_running_loop().time() + self.duration
        await self._sound(path, deadline)
        logger.info("Alarm playback finished after %.0fs", self.duration)

    async def _sound(self, path: Optional[str], deadline: float) -> None:
        if path:
            command = self._player_command or find_audio_player()
            if command is None:
                logger.warning("No audio player found for %s, using terminal bell", path)
            else:
                try:
                    await self._loop_audio(command, path, deadline)
                except OSError as exc:
                    logger.warning("Audio alarm failed (%s), falling back to terminal bell", exc)
                else:
                    return
        await self._loop_bell(deadline)

    async def _loop_audio(self, command: list[str], path: str, deadline: float) -> None:
        loop = asyncio.get_running_loop()
        while loop.time() < deadline:
            process = await asyncio.create_subprocess_exec(
                *command,
                path,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            try:
                returncode = await asyncio.wait_for(process.wait(), timeout=max(deadline - loop.time(), 0.0))
            except asyncio.TimeoutError:
                return
            finally:
                if process.returncode is None:
                    with contextlib.suppress(ProcessLookupError):
                        process.terminate()
                    await process.wait()
            if returncode != 0:
                raise OSError(f"{command[0]} exited with status {returncode}")

    async def _loop_bell(self, deadline: float) -> None:
        loop = asyncio.get_running_loop()
        while loop.time() < deadline:
            self._bell()
            await asyncio.sleep(min(self._bell_interval, max(deadline - loop.time(), 0.0)))

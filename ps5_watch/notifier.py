"""Audible notification when the watcher hits a terminal success"""

import asyncio
import shutil
from pathlib import Path

from loguru import logger

from .config import SOUND_EXTENSION, SOUND_PLAYER, SOUNDS_DIR


class SoundNotifier:
    """Plays a named cue from the sounds folder with an external player"""

    def __init__(
        self,
        sounds_dir: Path = SOUNDS_DIR,
        player: str = SOUND_PLAYER,
        extension: str = SOUND_EXTENSION,
    ):
        self.sounds_dir = Path(sounds_dir)
        self.player = player
        self.extension = extension

    def sound_path(self, cue: str) -> Path:
        return self.sounds_dir / f"{cue}{self.extension}"

    async def play(self, cue: str) -> bool:
        """
        Play a cue and wait for playback to finish.

        A missing player or sound file is logged and skipped; the caller's
        outcome does not depend on the speaker.

        Returns:
            True if the player ran and exited cleanly
        """
        player = shutil.which(self.player)
        if not player:
            logger.warning(f"Sound player '{self.player}' not found, skipping '{cue}' cue")
            return False

        path = self.sound_path(cue)
        if not path.exists():
            logger.warning(f"Sound file missing: {path}")
            return False

        process = await asyncio.create_subprocess_exec(
            player,
            str(path.resolve()),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        returncode = await process.wait()
        if returncode != 0:
            logger.warning(f"Sound player exited with status {returncode} for '{cue}'")
            return False

        return True

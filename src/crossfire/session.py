"""Single-device wiring: solo games against the bot and hot-seat games."""

from __future__ import annotations

from typing import Optional, Sequence
import logging
import random

from .bot import BotDriver
from .config import Settings, settings as default_settings
from .content import ContentSource
from .machine import GameMachine
from .persistence import SessionStore
from .puzzle import Puzzle
from .scheduler import Scheduler
from .state import BOT_INDEX, LOCAL, SOLO, GameState

logger = logging.getLogger(__name__)


class Session:
    """Owns one :class:`GameMachine`, the bot when playing solo, and the
    optional session store that mirrors the game to disk."""

    def __init__(
        self,
        content: Optional[ContentSource] = None,
        scheduler: Optional[Scheduler] = None,
        store: Optional[SessionStore] = None,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.rng = rng or random.Random()
        self.content = content or ContentSource(self.settings.data_dir, rng=self.rng)
        self.scheduler = scheduler or Scheduler()
        self.machine = GameMachine(self.content, self.scheduler, self.settings, self.rng)
        self.bot: Optional[BotDriver] = None
        self.store = store
        if store is not None:
            store.attach(self.machine)

    @property
    def state(self) -> GameState:
        return self.machine.state

    def start_solo(
        self,
        player_name: str,
        topics: Optional[Sequence[str]] = None,
        language: Optional[str] = None,
        puzzle: Optional[Puzzle] = None,
        countdown: Optional[float] = None,
    ) -> GameState:
        self._attach_bot()
        return self.machine.start_game(
            puzzle=puzzle,
            topics=topics,
            language=language,
            player_names=(player_name, self.settings.bot_name),
            mode=SOLO,
            countdown=self._countdown(countdown),
        )

    def start_local(
        self,
        player_names: Sequence[str],
        topics: Optional[Sequence[str]] = None,
        language: Optional[str] = None,
        puzzle: Optional[Puzzle] = None,
        countdown: Optional[float] = None,
    ) -> GameState:
        self._detach_bot()
        return self.machine.start_game(
            puzzle=puzzle,
            topics=topics,
            language=language,
            player_names=player_names,
            mode=LOCAL,
            countdown=self._countdown(countdown),
        )

    def resume(self) -> Optional[GameState]:
        """Pick up the stored game, if there is one still being played."""
        if self.store is None:
            return None
        state = self.store.load(self.scheduler.now())
        if state is None:
            return None
        if state.mode == SOLO:
            self._attach_bot()
        else:
            self._detach_bot()
        logger.info("Resuming stored game", extra={"mode": state.mode})
        return self.machine.restore(state)

    def exit(self) -> None:
        self._detach_bot()
        self.machine.exit()
        if self.store is not None:
            self.store.clear()

    def _countdown(self, countdown: Optional[float]) -> float:
        return self.settings.countdown_seconds if countdown is None else countdown

    def _attach_bot(self) -> None:
        if self.bot is None:
            self.bot = BotDriver(
                self.machine, self.scheduler, BOT_INDEX, self.settings, self.rng
            )

    def _detach_bot(self) -> None:
        if self.bot is not None:
            self.bot.close()
            self.bot = None

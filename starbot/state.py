from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, List, Optional, Set

from .config import logger
from .models import (
    ActivityChanges,
    ActivitySnapshot,
    ChallengeRecord,
    FinishedGameRecord,
    GameRecord,
)


class ChangeTracker:
    """Remembers what has already been observed and reports only what is new.

    All mutation goes through ``prime`` and the ``detect_*`` coroutines. Each
    of them holds the tracker lock for the whole compare-and-update step, so
    the poll loop and command handlers never see a half-applied snapshot and
    never both report the same change. Fetching the snapshot is the caller's
    job and happens before the lock is taken.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_seen_turn: Dict[int, GameRecord] = {}
        self._seen_challenge_ids: Set[int] = set()
        self._seen_finished_ids: Set[int] = set()
        self._last_change_at: float = clock()
        self._primed = False

    @property
    def last_change_at(self) -> float:
        return self._last_change_at

    @property
    def primed(self) -> bool:
        return self._primed

    def idle_seconds(self, now: Optional[float] = None) -> float:
        """Seconds since the last cycle that reported anything."""
        if now is None:
            now = self._clock()
        return max(0.0, now - self._last_change_at)

    def tracked_game_ids(self) -> List[int]:
        return list(self._last_seen_turn)

    async def prime(self, snapshot: ActivitySnapshot) -> None:
        """Absorb a snapshot without reporting any of it."""
        async with self._lock:
            for game in snapshot.active_games:
                self._last_seen_turn[game.id] = game
            self._seen_challenge_ids.update(c.id for c in snapshot.challenges)
            self._seen_finished_ids.update(g.id for g in snapshot.finished_games)
            self._primed = True
        logger.info(
            f"Primed tracker with {len(snapshot.active_games)} games, "
            f"{len(snapshot.challenges)} challenges, {len(snapshot.finished_games)} finished games"
        )

    async def detect_turn_changes(self, snapshot: ActivitySnapshot) -> Dict[int, GameRecord]:
        async with self._lock:
            return self._detect_turn_changes(snapshot)

    async def detect_new_challenges(self, snapshot: ActivitySnapshot) -> List[ChallengeRecord]:
        async with self._lock:
            return self._detect_new_challenges(snapshot)

    async def detect_new_finished_games(self, snapshot: ActivitySnapshot) -> List[FinishedGameRecord]:
        async with self._lock:
            return self._detect_new_finished_games(snapshot)

    async def detect_all(self, snapshot: ActivitySnapshot) -> ActivityChanges:
        """Run every detection against one snapshot in a single critical section."""
        async with self._lock:
            return ActivityChanges(
                turns=self._detect_turn_changes(snapshot),
                challenges=self._detect_new_challenges(snapshot),
                finished=self._detect_new_finished_games(snapshot),
            )

    # The helpers below expect the lock to be held.

    def _detect_turn_changes(self, snapshot: ActivitySnapshot) -> Dict[int, GameRecord]:
        turns: Dict[int, GameRecord] = {}
        for game in snapshot.active_games:
            previous = self._last_seen_turn.get(game.id)
            if previous is None:
                logger.info(f"Found new game {game.id} vs {game.opponent_name}")
                turns[game.id] = game
            elif previous.which_turn() != game.which_turn():
                logger.info(f"Found new turn in game {game.id}: {game.which_turn()} to act")
                turns[game.id] = game
            else:
                logger.debug(f"Game {game.id} already on last found turn")
            # Games missing from later snapshots keep their entry
            self._last_seen_turn[game.id] = game
        if turns:
            self._touch()
        return turns

    def _detect_new_challenges(self, snapshot: ActivitySnapshot) -> List[ChallengeRecord]:
        challenges: List[ChallengeRecord] = []
        for chal in snapshot.challenges:
            if chal.id in self._seen_challenge_ids:
                continue
            self._seen_challenge_ids.add(chal.id)
            logger.info(f"Found new challenge {chal.id}: {chal.challenger_name} -> {chal.opponent_name}")
            challenges.append(chal)
        if challenges:
            self._touch()
        return challenges

    def _detect_new_finished_games(self, snapshot: ActivitySnapshot) -> List[FinishedGameRecord]:
        finished: List[FinishedGameRecord] = []
        for game in snapshot.finished_games:
            if game.id in self._seen_finished_ids:
                continue
            self._seen_finished_ids.add(game.id)
            logger.info(f"Found finished game {game.id}")
            finished.append(game)
        if finished:
            self._touch()
        return finished

    def _touch(self) -> None:
        self._last_change_at = max(self._last_change_at, self._clock())

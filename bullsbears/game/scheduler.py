"""
Asyncio timer host for the game engine.

Owns the two periodic timers of a running game:
- Round timer: every second, ``engine.on_round_timer(generation)``
- Price timer: every ``price_interval`` seconds, ``engine.on_price_timer(generation)``

Both loops are bound to the generation they were started with and exit
as soon as the engine reports that generation is no longer current. The
engine starts and stops the scheduler on every state change; a loop never
reschedules itself outside its own task.

Blocking side work handed over by the engine (leaderboard submission)
runs in a worker thread via ``asyncio.to_thread``.

Example:
    >>> engine = GameEngine(seed=1)
    >>> scheduler = GameScheduler(engine, time_scale=0.01)
    >>> engine.initialize_game(difficulty="easy")
    >>> engine.start_game()
    >>> await scheduler.wait_finished()
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from ..errors import SchedulingDefect
from .engine import GameEngine
from .models import EventKind, GameEvent

logger = logging.getLogger(__name__)

ROUND_TICK_SECONDS = 1.0


class GameScheduler:
    """
    Drives a GameEngine from the asyncio event loop.

    Attributes:
        engine: Engine receiving the timer callbacks.
        time_scale: Multiplier applied to every interval (0.1 runs 10x faster).
        generation: Generation the running timers belong to.
    """

    def __init__(self, engine: GameEngine, time_scale: float = 1.0):
        if time_scale <= 0:
            raise ValueError(f"time_scale must be positive, got {time_scale}")

        self.engine = engine
        self.time_scale = time_scale
        self.generation: Optional[int] = None

        self._tasks: list[asyncio.Task] = []
        self._background: set[asyncio.Task] = set()
        self._finished = asyncio.Event()

        engine.attach_timers(self)
        self._unsubscribe = engine.subscribe(self._on_game_event)

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self, generation: int) -> None:
        """
        Start both timers for ``generation``.

        Must be called from inside a running event loop.
        """
        self.stop()
        self.generation = generation
        self._finished.clear()

        price_interval = self.engine.price_interval * self.time_scale
        round_interval = ROUND_TICK_SECONDS * self.time_scale

        self._tasks = [
            asyncio.create_task(
                self._run_timer("round", round_interval, self.engine.on_round_timer, generation)
            ),
            asyncio.create_task(
                self._run_timer("price", price_interval, self.engine.on_price_timer, generation)
            ),
        ]
        logger.debug(
            f"Timers started for generation {generation}: "
            f"round={round_interval:.3f}s, price={price_interval:.3f}s"
        )

    def stop(self) -> None:
        """Cancel outstanding timers. Safe to call from a timer callback."""
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()
        if self._tasks:
            logger.debug(f"Timers stopped for generation {self.generation}")
        self._tasks = []

    def run_in_background(self, func: Callable[..., Any], *args: Any) -> None:
        """
        Run a blocking call in a worker thread without stalling the timers.

        Results are collected by ``drain()``.
        """
        task = asyncio.create_task(asyncio.to_thread(func, *args))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> list[Any]:
        """Wait for outstanding background calls and return their results."""
        if not self._background:
            return []
        results = await asyncio.gather(*self._background, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Background call failed: {result}", exc_info=result)
        return results

    async def wait_finished(self, timeout: Optional[float] = None) -> None:
        """
        Wait until the game is over or reset and background calls are done.

        Raises:
            asyncio.TimeoutError: If ``timeout`` elapses first.
        """
        await asyncio.wait_for(self._wait_finished(), timeout=timeout)

    async def shutdown(self) -> None:
        """Cancel timers, wait for them to exit and finish background calls."""
        tasks = list(self._tasks)
        self.stop()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.drain()
        self._unsubscribe()
        self.engine.attach_timers(None)

    # =========================================================================
    # Private Methods
    # =========================================================================

    async def _wait_finished(self) -> None:
        await self._finished.wait()
        await self.drain()

    async def _run_timer(
        self,
        name: str,
        interval: float,
        callback: Callable[[int], bool],
        generation: int,
    ) -> None:
        try:
            while True:
                await asyncio.sleep(interval)
                try:
                    keep_going = callback(generation)
                except SchedulingDefect:
                    logger.critical(f"Scheduling defect in {name} timer", exc_info=True)
                    raise
                except Exception as e:
                    logger.error(f"Unexpected error in {name} timer: {e}", exc_info=True)
                    continue
                if not keep_going:
                    break
        except asyncio.CancelledError:
            logger.debug(f"{name} timer cancelled (generation {generation})")
            raise

    def _on_game_event(self, event: GameEvent) -> None:
        if event.kind in (EventKind.GAME_OVER, EventKind.GAME_RESET):
            self._finished.set()

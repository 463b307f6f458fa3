#!/usr/bin/env python3
"""Spin orchestration: draw request, target resolution and the two tick loops."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, Sequence

from device_profile import DeviceProfile
from lottery import (
    DrawFailed,
    DrawOutcome,
    EmptyCatalog,
    LuckyDrawError,
    PoolEntry,
    PrizeSpec,
    expand_pool,
    resolve_target,
)
from sphere_layout import SpherePosition, sphere_positions
from spin_engine import SpinEngine, SpinPhase

logger = logging.getLogger(__name__)

RequestDraw = Callable[[str], Awaitable[DrawOutcome]]


class PresentationSink:
    """Receives plain data from a session. Subclass and override what you render."""

    def positions_changed(self, positions: Sequence[SpherePosition]) -> None:
        pass

    def highlight_changed(self, index: int | None) -> None:
        pass

    def rotation_changed(self, rotation: tuple[float, float]) -> None:
        pass

    def settled(self, index: int, entry: PoolEntry, outcome: DrawOutcome | None) -> None:
        pass

    def draw_failed(self, error: DrawFailed) -> None:
        pass


class SpinSession:
    """One mounted lucky-draw view.

    Owns the display pool, the sphere rotation and the spin engine, and runs
    the idle ambient rotation and the spin ticks on ``scheduler`` (anything
    with ``after(delay_ms, callback)`` and ``cancel(handle)``). Only one of the
    two loops is ever scheduled. Close the session (or use it as a context
    manager) to cancel whatever is still pending.
    """

    def __init__(
        self,
        catalog: Sequence[PrizeSpec],
        profile: DeviceProfile,
        scheduler: Any,
        request_draw: RequestDraw,
        sink: Optional[PresentationSink] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.profile = profile
        self.scheduler = scheduler
        self.request_draw = request_draw
        self.sink = sink or PresentationSink()
        self.rng = rng
        self.engine = SpinEngine(profile)
        self.rotation = (0.0, 0.0)
        self.catalog: list[PrizeSpec] = []
        self.pool: list[PoolEntry] = []
        self.positions: tuple[SpherePosition, ...] = ()
        self.last_outcome: DrawOutcome | None = None
        self.drawing = False
        self.closed = False
        self._ambient_handle: Any = None
        self._spin_handle: Any = None

        self.load_catalog(catalog)
        self._start_ambient()

    def __enter__(self) -> "SpinSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def is_busy(self) -> bool:
        return self.drawing or self.engine.is_active

    def load_catalog(self, catalog: Sequence[PrizeSpec]) -> bool:
        if self.is_busy:
            logger.warning("Catalog change ignored while a spin is running")
            return False
        catalog = list(catalog)
        pool = expand_pool(catalog, self.profile.pool_length)
        self.catalog = catalog
        self.pool = pool
        self.positions = sphere_positions(len(pool), self.profile.radius)
        self.engine.reset()
        self.sink.positions_changed(self.positions)
        return True

    def close(self) -> None:
        self.closed = True
        self.drawing = False
        self._stop_ambient()
        if self._spin_handle is not None:
            self.scheduler.cancel(self._spin_handle)
            self._spin_handle = None

    # --- draw ---
    async def spin(self, code: str) -> int | None:
        """Request a draw for ``code`` and start spinning towards its slot.

        Returns the target slot, or ``None`` when the request was ignored
        because a spin is already under way.
        """
        if not self.begin_draw():
            return None
        try:
            outcome = await self.request_draw(code)
        except asyncio.CancelledError:
            self._back_to_idle()
            raise
        except Exception as exc:
            raise self.fail_draw(exc, code) from exc
        return self.finish_draw(outcome)

    def begin_draw(self) -> bool:
        if self.closed:
            logger.warning("Spin requested on a closed session")
            return False
        if self.is_busy:
            logger.info("Spin already in progress; request ignored")
            return False
        if not self.pool:
            raise EmptyCatalog("No prizes to spin over.")
        self.drawing = True
        self.last_outcome = None
        self._stop_ambient()
        self.sink.highlight_changed(None)
        return True

    def finish_draw(self, outcome: DrawOutcome) -> int | None:
        if self.closed:
            return None
        self.drawing = False
        try:
            target = resolve_target(outcome, self.catalog, self.pool, self.rng)
            self.engine.start(target, len(self.pool))
        except LuckyDrawError:
            self._back_to_idle()
            raise
        self.last_outcome = outcome
        logger.info("Spinning to slot %s (%s)", target, self.pool[target].display_id)
        self._spin_handle = self.scheduler.after(0, self._spin_tick)
        return target

    def fail_draw(self, error: BaseException, code: str = "") -> DrawFailed:
        """Return to idle after a failed draw and build the error to report."""
        self._back_to_idle()
        failure = DrawFailed(str(error) or "Invalid code or error occurred", code=code)
        logger.warning("Draw failed for code %r: %s", code, failure)
        if not self.closed:
            self.sink.draw_failed(failure)
        return failure

    def _back_to_idle(self) -> None:
        self.drawing = False
        self.engine.reset()
        self._start_ambient()

    # --- tick loops ---
    def _spin_tick(self) -> None:
        self._spin_handle = None
        if self.closed:
            return
        event = self.engine.tick()
        if event is None:
            if self.engine.phase is SpinPhase.DONE:
                index = self.engine.state.settled_index
                self.sink.highlight_changed(None)
                self.sink.settled(index, self.pool[index], self.last_outcome)
                logger.info("Settled on slot %s (%s)", index, self.pool[index].name)
                self._start_ambient()
            return
        self.sink.highlight_changed(event.index)
        delta_x, delta_y = event.rotation_delta
        if delta_x or delta_y:
            self.rotation = (self.rotation[0] + delta_x, self.rotation[1] + delta_y)
            self.sink.rotation_changed(self.rotation)
        self._spin_handle = self.scheduler.after(event.delay_ms, self._spin_tick)

    def _start_ambient(self) -> None:
        if self.closed or self.is_busy or self._ambient_handle is not None:
            return
        self._ambient_handle = self.scheduler.after(self.profile.frame_interval_ms, self._ambient_tick)

    def _stop_ambient(self) -> None:
        if self._ambient_handle is not None:
            self.scheduler.cancel(self._ambient_handle)
            self._ambient_handle = None

    def _ambient_tick(self) -> None:
        self._ambient_handle = None
        if self.closed or self.is_busy:
            return
        step_x, step_y = self.profile.ambient_step
        self.rotation = (self.rotation[0] + step_x, self.rotation[1] + step_y)
        self.sink.rotation_changed(self.rotation)
        self._start_ambient()

#!/usr/bin/env python3
"""Tick-driven spin that always stops on the pre-selected slot."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from device_profile import DeviceProfile
from lottery import InvalidTarget

logger = logging.getLogger(__name__)


class SpinPhase(Enum):
    IDLE = "idle"
    SPINNING = "spinning"
    SETTLING = "settling"
    DONE = "done"


@dataclass
class SpinState:
    phase: SpinPhase = SpinPhase.IDLE
    current_index: int = 0
    speed_ms: float = 0.0
    completed_rounds: int = 0
    rotation_step: float = 0.0
    target_index: int | None = None
    pool_length: int = 0
    ticks: int = 0
    settled_index: int | None = None


@dataclass(frozen=True)
class TickEvent:
    index: int
    rotation_delta: tuple[float, float]
    delay_ms: float
    settling: bool = False


class SpinEngine:
    """Walks the pool slot by slot, slowing down, until it rests on the target.

    The engine owns no timer. Whoever drives it calls :meth:`tick` and waits
    ``event.delay_ms`` before the next call; ``None`` means nothing is left to
    schedule. The stop check runs on every tick once the spin has done
    ``min_rounds_before_stop`` full passes and slowed past
    ``stop_speed_threshold_ms``, so the spin keeps wrapping until the current
    slot is the target and never settles anywhere else.
    """

    def __init__(self, profile: DeviceProfile) -> None:
        self.profile = profile
        self.state = SpinState()

    @property
    def phase(self) -> SpinPhase:
        return self.state.phase

    @property
    def is_active(self) -> bool:
        return self.state.phase in {SpinPhase.SPINNING, SpinPhase.SETTLING}

    def reset(self) -> None:
        self.state = SpinState()

    def start(self, target_index: int, pool_length: int) -> bool:
        if self.is_active:
            logger.warning("Spin already in progress; ignoring start(%s)", target_index)
            return False
        if pool_length < 1:
            raise InvalidTarget(f"Cannot spin over an empty pool (target {target_index})")
        if not 0 <= target_index < pool_length:
            raise InvalidTarget(f"Target {target_index} is outside the pool [0, {pool_length})")
        self.state = SpinState(
            phase=SpinPhase.SPINNING,
            current_index=0,
            speed_ms=float(self.profile.initial_speed_ms),
            completed_rounds=0,
            rotation_step=float(self.profile.rotation_step),
            target_index=target_index,
            pool_length=pool_length,
        )
        logger.debug("Spin started: target=%s pool=%s", target_index, pool_length)
        return True

    def stop_gate_open(self) -> bool:
        state = self.state
        return (
            state.completed_rounds >= self.profile.min_rounds_before_stop
            and state.speed_ms > self.profile.stop_speed_threshold_ms
        )

    def tick(self) -> TickEvent | None:
        state = self.state
        if state.phase is SpinPhase.SETTLING:
            state.phase = SpinPhase.DONE
            state.settled_index = state.target_index
            logger.debug("Spin settled on %s after %s ticks", state.settled_index, state.ticks)
            return None
        if state.phase is not SpinPhase.SPINNING:
            return None

        if self.stop_gate_open() and state.current_index == state.target_index:
            state.phase = SpinPhase.SETTLING
            return TickEvent(
                index=state.current_index,
                rotation_delta=(0.0, 0.0),
                delay_ms=self.profile.settle_delay_ms,
                settling=True,
            )

        index = state.current_index
        rotation_delta = (state.rotation_step, state.rotation_step * 0.8)
        state.ticks += 1
        state.current_index = (state.current_index + 1) % state.pool_length
        if state.current_index == 0:
            state.completed_rounds += 1

        if state.completed_rounds >= self.profile.rounds_before_slowdown:
            state.speed_ms += self.profile.speed_increment_ms
            state.rotation_step *= self.profile.rotation_decay

        logger.debug("Tick %s: slot %s, next in %.0f ms", state.ticks, index, state.speed_ms)
        return TickEvent(index=index, rotation_delta=rotation_delta, delay_ms=state.speed_ms)

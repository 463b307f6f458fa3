#!/usr/bin/env python3
"""Local stand-in for the draw backend that validates lucky codes."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Iterable, Optional, Sequence

from lottery import DrawOutcome, PrizeSpec

logger = logging.getLogger(__name__)


class LocalDrawService:
    """Hands out one outcome per code.

    A code is accepted once. When ``valid_codes`` is given, only those codes
    are accepted at all. Winners are picked uniformly from the catalog with
    probability ``win_rate``.
    """

    def __init__(
        self,
        catalog: Sequence[PrizeSpec],
        valid_codes: Optional[Iterable[str]] = None,
        win_rate: float = 1.0,
        latency_ms: float = 500,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not 0.0 <= win_rate <= 1.0:
            raise ValueError(f"win_rate must be between 0 and 1, got {win_rate}")
        self.catalog = list(catalog)
        self.valid_codes = {str(code).strip() for code in valid_codes} if valid_codes else None
        self.win_rate = win_rate
        self.latency_ms = latency_ms
        self.rng = rng or random.Random()
        self.used_codes: dict[str, DrawOutcome] = {}
        self._reserved: set[str] = set()

    async def request_draw(self, code: str) -> DrawOutcome:
        code = (code or "").strip()
        if not code:
            raise ValueError("Please enter a code")
        if self.valid_codes is not None and code not in self.valid_codes:
            raise ValueError(f"Invalid code: {code}")
        if code in self.used_codes or code in self._reserved:
            raise ValueError(f"Code already used: {code}")
        self._reserved.add(code)
        try:
            if self.latency_ms > 0:
                await asyncio.sleep(self.latency_ms / 1000)
        finally:
            self._reserved.discard(code)

        if self.catalog and self.rng.random() < self.win_rate:
            prize = self.rng.choice(self.catalog)
            outcome = DrawOutcome(
                is_winner=True,
                prize_id=prize.id,
                prize_name=prize.name,
                message="Congratulations! You've won a prize!",
                code=code,
            )
        else:
            outcome = DrawOutcome(is_winner=False, message="Better luck next time!", code=code)
        self.used_codes[code] = outcome
        logger.info("Code %s drawn: winner=%s prize=%s", code, outcome.is_winner, outcome.prize_id)
        return outcome

    def verify_code(self, code: str) -> DrawOutcome:
        """Look up the outcome a used code was given."""
        code = (code or "").strip()
        if not code:
            raise ValueError("Please enter a code")
        outcome = self.used_codes.get(code)
        if outcome is None:
            raise ValueError(f"Invalid or unused code: {code}")
        return outcome

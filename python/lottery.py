#!/usr/bin/env python3
"""Sphere lucky draw: prize catalog, display pool and headless runner.

Usage examples:
  python python/lottery.py pool
  python python/lottery.py --compact layout
  python python/lottery.py --seed 7 spin --code LUCKY-001
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_PRIZES = [
    {"id": 1, "name": "Prize 1", "description": "First Prize", "color": "#FF6B6B", "image": None},
    {"id": 2, "name": "Prize 2", "description": "Second Prize", "color": "#4ECDC4", "image": None},
    {"id": 3, "name": "Prize 3", "description": "Third Prize", "color": "#45B7D1", "image": None},
    {"id": 4, "name": "Prize 4", "description": "Fourth Prize", "color": "#96CEB4", "image": None},
    {"id": 5, "name": "Prize 5", "description": "Fifth Prize", "color": "#FFEAA7", "image": None},
]


class LuckyDrawError(Exception):
    """Base class for every draw failure."""


class EmptyCatalog(LuckyDrawError):
    """No prizes to display; nothing can be laid out or spun."""


class InvalidTarget(LuckyDrawError):
    """Spin target outside the active pool."""


class ResolutionError(LuckyDrawError):
    """A draw outcome could not be mapped onto the active pool."""


class DrawFailed(LuckyDrawError):
    """The draw service rejected the code or failed; the caller may retry."""

    retryable = True

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class PrizeSpec:
    id: Any
    name: str
    description: str = ""
    color: str = "#ffffff"
    image: Optional[str] = None


@dataclass(frozen=True)
class PoolEntry:
    slot_index: int
    source_id: Any
    display_id: str
    duplicate_index: int
    name: str
    description: str
    color: str
    image: Optional[str]


@dataclass(frozen=True)
class DrawOutcome:
    is_winner: bool
    prize_id: Any = None
    prize_name: str = ""
    message: str = ""
    code: str = ""


def read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def write_json(path: Path, payload: Any) -> None:
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)


def resolve_path(base_dir: Path, raw_path: str) -> Path:
    candidate = Path(raw_path)
    if candidate.is_absolute():
        return candidate
    return base_dir / raw_path


def parse_prize_entries(raw_prizes: Iterable[Dict[str, Any]]) -> List[PrizeSpec]:
    if not isinstance(raw_prizes, list):
        raise ValueError("Prizes data must be a list of objects.")
    prizes = []
    seen_ids = set()
    for entry in raw_prizes:
        if not isinstance(entry, dict):
            raise ValueError(f"Invalid prize entry: {entry}")
        prize_id = entry.get("id")
        name = str(entry.get("name", "")).strip()
        if prize_id is None or str(prize_id).strip() == "" or not name:
            raise ValueError(f"Invalid prize entry: {entry}")
        if isinstance(prize_id, str):
            prize_id = prize_id.strip()
        if str(prize_id) in seen_ids:
            raise ValueError(f"Duplicate prize id: {prize_id}")
        seen_ids.add(str(prize_id))
        prizes.append(
            PrizeSpec(
                id=prize_id,
                name=name,
                description=str(entry.get("description", "") or "").strip(),
                color=str(entry.get("color", "") or "#ffffff").strip(),
                image=entry.get("image") or None,
            )
        )
    return prizes


def load_prizes(path: Path) -> List[PrizeSpec]:
    raw_prizes = read_json(path)
    return parse_prize_entries(raw_prizes)


def load_config(config_path: Path) -> Dict[str, Any]:
    config = read_json(config_path)
    if not isinstance(config, dict):
        raise ValueError(f"Config must be a JSON object: {config_path}")
    config.setdefault("prizes_file", "data/prizes.json")
    config.setdefault("compact", False)
    config.setdefault("profiles", {})
    config.setdefault("background_color", "#0b0f1c")
    config.setdefault("background_image", "")
    config.setdefault("background_music", "")
    config.setdefault("win_sound", "win.mp3")
    config.setdefault("valid_codes", [])
    config.setdefault("win_rate", 1.0)
    config.setdefault("draw_latency_ms", 500)
    return config


def ensure_default_files(config_path: Path) -> None:
    base_dir = config_path.parent
    base_dir.mkdir(parents=True, exist_ok=True)
    if not config_path.exists():
        default_config = {
            "prizes_file": "data/prizes.json",
            "compact": False,
            "profiles": {"full": {}, "compact": {}},
            "background_color": "#0b0f1c",
            "background_image": "",
            "background_music": "",
            "win_sound": "win.mp3",
            "valid_codes": [],
            "win_rate": 1.0,
            "draw_latency_ms": 500,
        }
        write_json(config_path, default_config)
        logger.info("Wrote default config to %s", config_path)

    config = read_json(config_path)
    prizes_path = resolve_path(base_dir, config.get("prizes_file", "data/prizes.json"))
    if not prizes_path.exists():
        prizes_path.parent.mkdir(parents=True, exist_ok=True)
        write_json(prizes_path, DEFAULT_PRIZES)
        logger.info("Wrote default prize catalog to %s", prizes_path)


def expand_pool(catalog: Sequence[PrizeSpec], pool_length: int) -> List[PoolEntry]:
    """Repeat the catalog round-robin until the pool has ``pool_length`` slots.

    Slot ``i`` shows ``catalog[i % len(catalog)]``; its duplicate index is
    ``i // len(catalog)``, so ``"<source id>-<duplicate index>"`` is unique for
    any catalog with unique ids.
    """
    if not catalog:
        raise EmptyCatalog("The prize catalog is empty.")
    if pool_length < 1:
        raise ValueError(f"Pool length must be at least 1, got {pool_length}")
    seen_ids = set()
    for prize in catalog:
        if str(prize.id) in seen_ids:
            raise ValueError(f"Duplicate prize id: {prize.id}")
        seen_ids.add(str(prize.id))

    size = len(catalog)
    pool = []
    for slot in range(pool_length):
        prize = catalog[slot % size]
        duplicate_index = slot // size
        pool.append(
            PoolEntry(
                slot_index=slot,
                source_id=prize.id,
                display_id=f"{prize.id}-{duplicate_index}",
                duplicate_index=duplicate_index,
                name=prize.name,
                description=prize.description,
                color=prize.color,
                image=prize.image,
            )
        )
    return pool


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def prize_ids_match(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    if left == right or str(left) == str(right):
        return True
    left_number = _as_int(left)
    return left_number is not None and left_number == _as_int(right)


def resolve_target(
    outcome: DrawOutcome,
    catalog: Sequence[PrizeSpec],
    pool: Sequence[PoolEntry],
    rng: Optional[random.Random] = None,
) -> int:
    """Map a draw outcome onto a slot of the active pool."""
    if not pool:
        raise ResolutionError("The active pool is empty.")
    rng = rng or random

    if outcome.is_winner and outcome.prize_id is not None:
        prize = next((item for item in catalog if prize_ids_match(item.id, outcome.prize_id)), None)
        if prize is None:
            logger.warning("Winning prize %r is not in the catalog; picking a random slot", outcome.prize_id)
        else:
            slot = next((entry.slot_index for entry in pool if entry.source_id == prize.id), None)
            if slot is not None:
                return slot
            logger.warning("Winning prize %r has no slot in the active pool; picking a random slot", prize.id)

    return rng.randrange(len(pool))


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sphere lucky draw runner (headless).")
    parser.add_argument(
        "--config",
        default="python/config.json",
        help="Path to config.json (default: python/config.json)",
    )
    parser.add_argument("--compact", action="store_true", help="Use the compact device profile")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible draws")
    parser.add_argument("--verbose", action="store_true", help="Log every spin tick")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("pool", help="Show the expanded display pool")
    subparsers.add_parser("layout", help="Show the sphere position of every slot")
    spin_parser = subparsers.add_parser("spin", help="Draw with a code and spin until settled")
    spin_parser.add_argument("--code", required=True, help="Lucky code sent to the draw service")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    from device_profile import profile_from_config
    from draw_service import LocalDrawService
    from scheduler import VirtualScheduler
    from sphere_layout import sphere_positions
    from spin_engine import SpinPhase
    from spin_session import SpinSession

    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    rng = random.Random(args.seed)

    config_path = Path(args.config)
    ensure_default_files(config_path)
    config = load_config(config_path)
    base_dir = config_path.parent
    catalog = load_prizes(resolve_path(base_dir, config["prizes_file"]))
    profile = profile_from_config(config, compact=args.compact or bool(config["compact"]))

    try:
        if args.command == "pool":
            for entry in expand_pool(catalog, profile.pool_length):
                print(f"{entry.slot_index:3d} | {entry.display_id} | {entry.name}")
            return
        if args.command == "layout":
            expand_pool(catalog, profile.pool_length)
            for index, position in enumerate(sphere_positions(profile.pool_length, profile.radius)):
                print(f"{index:3d} | x={position.x:9.3f} y={position.y:9.3f} z={position.z:9.3f}")
            return

        service = LocalDrawService(
            catalog,
            valid_codes=config["valid_codes"] or None,
            win_rate=float(config["win_rate"]),
            latency_ms=0,
            rng=rng,
        )
        scheduler = VirtualScheduler()
        with SpinSession(catalog, profile, scheduler, service.request_draw, rng=rng) as session:
            asyncio.run(session.spin(args.code))
            scheduler.run_until(lambda: session.engine.phase is SpinPhase.DONE)
            settled_index = session.engine.state.settled_index
            entry = session.pool[settled_index]
            outcome = session.last_outcome
            print(outcome.message if outcome and outcome.message else "Result:")
            print(
                f"- slot {settled_index} | {entry.display_id} | {entry.name}"
                f" ({session.engine.state.ticks} ticks, {scheduler.now_ms / 1000:.1f}s)"
            )
    except LuckyDrawError as exc:
        raise SystemExit(str(exc)) from exc


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Tkinter entry point for the sphere lucky draw."""

from __future__ import annotations

import argparse
import logging
import random
import tkinter as tk
from pathlib import Path
from tkinter import messagebox
from typing import Optional, Sequence

from device_profile import profile_from_config
from draw_service import LocalDrawService
from lottery import ensure_default_files, load_config, load_prizes, resolve_path
from sphere_window import SphereLotteryWindow

logger = logging.getLogger(__name__)


class LuckyDrawApp:
    def __init__(self, root: tk.Tk, config_path: Path, compact: bool = False, seed: int | None = None) -> None:
        self.root = root
        self.root.title("Lucky Draw")
        self.config_path = config_path
        self.base_dir = config_path.parent

        ensure_default_files(self.config_path)
        self.config = self._load_config()
        self.prizes_file = resolve_path(self.base_dir, self.config["prizes_file"])
        try:
            self.catalog = load_prizes(self.prizes_file)
        except (OSError, ValueError) as exc:
            messagebox.showerror("Prize catalog", f"{self.prizes_file}: {exc}")
            raise SystemExit(1) from exc
        try:
            self.profile = profile_from_config(self.config, compact=compact or bool(self.config["compact"]))
        except ValueError as exc:
            messagebox.showerror("Config error", f"{self.config_path}: {exc}")
            raise SystemExit(1) from exc
        self.draw_service = LocalDrawService(
            self.catalog,
            valid_codes=self.config["valid_codes"] or None,
            win_rate=float(self.config["win_rate"]),
            latency_ms=float(self.config["draw_latency_ms"]),
            rng=random.Random(seed),
        )
        logger.info("Loaded %s prizes, %s profile", len(self.catalog), self.profile.name)

        self.root.withdraw()
        self.window = SphereLotteryWindow(
            self.root,
            base_dir=self.base_dir,
            catalog=self.catalog,
            profile=self.profile,
            draw_service=self.draw_service,
            background_color=str(self.config.get("background_color", "#0b0f1c")),
            background_path=self.config.get("background_image") or None,
            background_music_path=self.config.get("background_music") or None,
            win_sound_path=self.config.get("win_sound") or None,
            on_close=self.root.destroy,
        )

    def _load_config(self) -> dict:
        try:
            return load_config(self.config_path)
        except (OSError, ValueError) as exc:
            messagebox.showerror("Config error", f"{self.config_path}: {exc}")
            raise SystemExit(1) from exc


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sphere lucky draw window.")
    parser.add_argument("config", nargs="?", default="python/config.json", help="Path to config.json")
    parser.add_argument("--compact", action="store_true", help="Use the compact device profile")
    parser.add_argument("--seed", type=int, help="Random seed for the local draw service")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    root = tk.Tk()
    LuckyDrawApp(root, Path(args.config), compact=args.compact, seed=args.seed)
    root.mainloop()


if __name__ == "__main__":
    main()

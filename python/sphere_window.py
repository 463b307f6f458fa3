#!/usr/bin/env python3
"""Big-screen sphere window that renders a spin session."""

from __future__ import annotations

import asyncio
import logging
import math
import queue
import random
import threading
import time
import tkinter as tk
from pathlib import Path
from tkinter import messagebox, simpledialog, ttk
from typing import Any, Callable, Sequence

import pygame
from PIL import Image, ImageTk

from device_profile import DeviceProfile
from draw_service import LocalDrawService
from lottery import DrawFailed, DrawOutcome, EmptyCatalog, LuckyDrawError, PoolEntry, PrizeSpec, resolve_path
from sphere_layout import SpherePosition, card_scale, project_point, rotate_point
from spin_session import PresentationSink, SpinSession

logger = logging.getLogger(__name__)


class TkScheduler:
    """Scheduler backed by a widget's ``after`` queue."""

    def __init__(self, widget: tk.Misc) -> None:
        self.widget = widget

    def after(self, delay_ms: float, callback: Callable[[], None]) -> str:
        return self.widget.after(max(0, int(round(delay_ms))), callback)

    def cancel(self, handle: str) -> None:
        self.widget.after_cancel(handle)


class SphereLotteryWindow(tk.Toplevel, PresentationSink):
    """Prize cards on a rotating sphere, spun by a :class:`SpinSession`."""

    def __init__(
        self,
        root: tk.Tk,
        base_dir: Path,
        catalog: Sequence[PrizeSpec],
        profile: DeviceProfile,
        draw_service: LocalDrawService,
        background_color: str,
        background_path: str | None,
        background_music_path: str | None,
        win_sound_path: str | None,
        on_close: Callable[[], None] | None,
    ) -> None:
        super().__init__(root)
        self.root = root
        self.base_dir = base_dir
        self.profile = profile
        self.draw_service = draw_service
        self.background_color = background_color or "#0b0f1c"
        self.background_path = background_path
        self.background_music_path = background_music_path
        self.win_sound_path = win_sound_path
        self.on_close = on_close

        self.title("Lucky Draw")
        side = profile.container_size + 260
        self.geometry(f"{side}x{side}")
        self.fullscreen = False
        self.resizable(True, True)
        self.protocol("WM_DELETE_WINDOW", self._handle_close)
        self.bind("<Escape>", self._handle_escape)
        self.bind("<F11>", self._toggle_fullscreen)
        self.bind("<space>", self._handle_space)
        self.bind("<KeyPress-m>", self._toggle_music)

        self.status_var = tk.StringVar(value="Click to Start Your Lucky Draw!")
        self.control_bar = ttk.Frame(self, padding=8)
        self.control_bar.pack(fill=tk.X)
        self.start_button = ttk.Button(self.control_bar, text="START", command=self._prompt_code)
        self.start_button.pack(side=tk.LEFT)
        ttk.Button(self.control_bar, text="Verify code", command=self._prompt_verify).pack(side=tk.LEFT, padx=6)
        self.music_button = ttk.Button(self.control_bar, text="Unmute", command=self._toggle_music)
        self.music_button.pack(side=tk.LEFT)
        ttk.Label(self.control_bar, textvariable=self.status_var).pack(side=tk.LEFT, padx=12)
        mode = "Mobile optimized" if profile.compact else "Desktop version"
        ttk.Label(self.control_bar, text=f"{len(catalog)} unique prizes • {mode}", foreground="#5ee1ff").pack(
            side=tk.RIGHT
        )

        self.canvas = tk.Canvas(self, bg=self.background_color, highlightthickness=0)
        self.canvas.pack(fill=tk.BOTH, expand=True)
        self.canvas.bind("<Configure>", self._handle_resize)

        self.background_image = None
        self.background_original = None
        self.background_id = None
        self.after_id = None
        self.normal_geometry = ""
        self.cards: list[dict[str, Any]] = []
        self.positions: tuple[SpherePosition, ...] = ()
        self.cards_dirty = False
        self.ambient_particles: list[dict[str, Any]] = []
        self.particles: list[dict[str, Any]] = []
        self.highlighted_index: int | None = None
        self.winning_index: int | None = None
        self.rotation = (0.0, 0.0)
        self.projection_distance = profile.radius * 3.0
        self.draw_results: queue.Queue[tuple[str, DrawOutcome | None, Exception | None]] = queue.Queue()
        self.audio_ready = False
        self.music_ready = False
        self.music_playing = False
        self.music_started = False
        self.win_sound = None

        self._load_background()
        self._build_ambient_layer()
        self._init_audio()

        self.session: SpinSession | None = None
        if catalog:
            self.session = SpinSession(
                catalog,
                profile,
                TkScheduler(self),
                draw_service.request_draw,
                sink=self,
            )
        else:
            self._show_empty_catalog()
        self._animate()

    # --- window plumbing ---
    def _handle_close(self) -> None:
        if self.session:
            self.session.close()
        if self.after_id:
            self.after_cancel(self.after_id)
            self.after_id = None
        if self.music_ready:
            try:
                pygame.mixer.music.stop()
            except pygame.error as exc:
                logger.warning("Could not stop music: %s", exc)
        self.destroy()
        if self.on_close:
            self.on_close()

    def _handle_escape(self, event: tk.Event) -> None:
        if self.fullscreen:
            self._toggle_fullscreen(event)
            return
        self._handle_close()

    def _toggle_fullscreen(self, event: tk.Event | None = None) -> None:
        self.fullscreen = not self.fullscreen
        if self.fullscreen:
            self.normal_geometry = self.geometry()
            self.geometry(f"{self.winfo_screenwidth()}x{self.winfo_screenheight()}+0+0")
        elif self.normal_geometry:
            self.geometry(self.normal_geometry)

    def _handle_resize(self, event: tk.Event) -> None:
        self._load_background()
        self._build_ambient_layer()

    def _load_background(self) -> None:
        self.canvas.configure(bg=self.background_color)
        if not self.background_path:
            return
        path = resolve_path(self.base_dir, self.background_path)
        if not path.exists():
            logger.warning("Background image not found: %s", path)
            self.background_path = None
            return
        if self.background_original is None:
            self.background_original = Image.open(path)
        width = self.winfo_width()
        height = self.winfo_height()
        if width <= 1 or height <= 1:
            return
        resized = self.background_original.resize((width, height), Image.Resampling.LANCZOS)
        self.background_image = ImageTk.PhotoImage(resized)
        if self.background_id is None:
            self.background_id = self.canvas.create_image(0, 0, image=self.background_image, anchor=tk.NW)
        else:
            self.canvas.itemconfigure(self.background_id, image=self.background_image)
        self.canvas.tag_lower(self.background_id)

    def _init_audio(self) -> None:
        if not self.win_sound_path and not self.background_music_path:
            return
        try:
            if not pygame.mixer.get_init():
                pygame.mixer.init()
            if self.win_sound_path:
                path = resolve_path(self.base_dir, self.win_sound_path)
                if path.exists():
                    self.win_sound = pygame.mixer.Sound(str(path))
                    self.audio_ready = True
            if self.background_music_path:
                music_path = resolve_path(self.base_dir, self.background_music_path)
                if music_path.exists():
                    pygame.mixer.music.load(str(music_path))
                    self.music_ready = True
        except pygame.error as exc:
            logger.warning("Audio unavailable: %s", exc)
            self.audio_ready = False
            self.music_ready = False

    def _toggle_music(self, event: tk.Event | None = None) -> None:
        if not self.music_ready:
            self.status_var.set("Unable to play background music")
            return
        try:
            if self.music_playing:
                pygame.mixer.music.pause()
            elif self.music_started:
                pygame.mixer.music.unpause()
            else:
                pygame.mixer.music.play(-1)
                self.music_started = True
        except pygame.error as exc:
            logger.warning("Music toggle failed: %s", exc)
            self.status_var.set("Unable to play background music")
            return
        self.music_playing = not self.music_playing
        self.music_button.configure(text="Mute" if self.music_playing else "Unmute")

    # --- sink ---
    def positions_changed(self, positions: Sequence[SpherePosition]) -> None:
        # The session may still be under construction here; cards are built on the next frame.
        self.positions = tuple(positions)
        self.cards_dirty = True

    def _build_cards(self) -> None:
        self.canvas.delete("card")
        self.cards = []
        self.cards_dirty = False
        for entry, position in zip(self.session.pool, self.positions):
            card_id = self.canvas.create_rectangle(0, 0, 0, 0, fill=entry.color, outline="#ffffff", tags="card")
            text_id = self.canvas.create_text(
                0, 0, text=entry.name, fill="#ffffff", font=("Helvetica", 8, "bold"), tags="card"
            )
            self.cards.append({"entry": entry, "position": position, "card": card_id, "text": text_id})

    def highlight_changed(self, index: int | None) -> None:
        self.highlighted_index = index

    def rotation_changed(self, rotation: tuple[float, float]) -> None:
        self.rotation = rotation

    def settled(self, index: int, entry: PoolEntry, outcome: DrawOutcome | None) -> None:
        self.winning_index = index
        self.start_button.state(["!disabled"])
        self.status_var.set(f"Winner: {entry.name}")
        self._show_result(entry, outcome)

    def draw_failed(self, error: DrawFailed) -> None:
        self.start_button.state(["!disabled"])
        self.status_var.set(str(error))
        messagebox.showerror("Lucky Draw", f"{error}\nPlease try again.", parent=self)

    # --- draw flow ---
    def _handle_space(self, event: tk.Event) -> None:
        self._prompt_code()

    def _prompt_code(self) -> None:
        if not self.session or self.session.is_busy:
            return
        code = simpledialog.askstring("Enter Lucky Code", "Enter your lucky code...", parent=self)
        if code is None:
            return
        if not code.strip():
            self.status_var.set("Please enter a code")
            return
        self._start_draw(code.strip())

    def _start_draw(self, code: str) -> None:
        try:
            if not self.session.begin_draw():
                return
        except EmptyCatalog as exc:
            messagebox.showerror("Lucky Draw", str(exc), parent=self)
            return
        self.winning_index = None
        self.canvas.delete("result")
        self.start_button.state(["disabled"])
        self.status_var.set("SPINNING")
        threading.Thread(target=self._request_draw_worker, args=(code,), daemon=True).start()

    def _request_draw_worker(self, code: str) -> None:
        # Runs off the Tk thread; results are handed back through the queue.
        try:
            outcome = asyncio.run(self.draw_service.request_draw(code))
        except Exception as exc:
            self.draw_results.put((code, None, exc))
            return
        self.draw_results.put((code, outcome, None))

    def _poll_draw_results(self) -> None:
        while True:
            try:
                code, outcome, error = self.draw_results.get_nowait()
            except queue.Empty:
                return
            if not self.session or self.session.closed:
                continue
            if error is not None:
                self.session.fail_draw(error, code)
            else:
                try:
                    self.session.finish_draw(outcome)
                except LuckyDrawError as exc:
                    self.session.fail_draw(exc, code)

    def _prompt_verify(self) -> None:
        code = simpledialog.askstring("Verify code", "Enter the code to verify:", parent=self)
        if code is None:
            return
        try:
            outcome = self.draw_service.verify_code(code)
        except ValueError as exc:
            messagebox.showerror("Verify code", str(exc), parent=self)
            return
        if outcome.is_winner:
            detail = f"Won: {outcome.prize_name} (prize {outcome.prize_id})"
        else:
            detail = "No prize for this code"
        messagebox.showinfo("Verify code", f"Code {outcome.code}\n{detail}", parent=self)

    # --- rendering ---
    def _animate(self) -> None:
        self._poll_draw_results()
        self._animate_ambient()
        self._render_cards()
        self._animate_particles()
        self.after_id = self.after(40, self._animate)

    def _render_cards(self) -> None:
        if self.cards_dirty and self.session:
            self._build_cards()
        if not self.cards:
            return
        width = self.canvas.winfo_width() or 900
        height = self.canvas.winfo_height() or 700
        center_x = width / 2
        center_y = height / 2
        angle_x, angle_y = self.rotation
        ordered = []
        for index, card in enumerate(self.cards):
            rotated = rotate_point(card["position"], angle_x, angle_y)
            point = project_point(rotated, self.projection_distance)
            ordered.append((point.depth, index, card, rotated, point))
        # Far cards first so near ones stack on top.
        ordered.sort(key=lambda item: item[0])
        for _, index, card, rotated, point in ordered:
            scale = card_scale(rotated, self.profile.compact) * point.factor
            is_highlighted = index == self.highlighted_index
            is_winner = index == self.winning_index
            if is_highlighted:
                scale *= 1.1
            if is_winner:
                scale *= 1.0 + 0.08 * abs(math.sin(time.monotonic() * 6))
            half = self.profile.card_size * scale / 2
            screen_x = center_x + point.x
            screen_y = center_y + point.y
            outline = "#ffffff"
            border = 1
            if is_highlighted:
                outline, border = "#facc15", 3
            if is_winner:
                outline, border = "#4ade80", 3
            self.canvas.coords(card["card"], screen_x - half, screen_y - half, screen_x + half, screen_y + half)
            self.canvas.itemconfigure(card["card"], outline=outline, width=border)
            self.canvas.coords(card["text"], screen_x, screen_y)
            self.canvas.itemconfigure(card["text"], font=("Helvetica", max(6, int(9 * scale)), "bold"))
            self.canvas.tag_raise(card["card"])
            self.canvas.tag_raise(card["text"])
        self.canvas.tag_raise("result")
        self.canvas.tag_raise("particle")

    def _show_empty_catalog(self) -> None:
        self.start_button.state(["disabled"])
        self.status_var.set("No Prizes Available")
        self.canvas.create_text(
            (self.canvas.winfo_width() or 900) / 2,
            (self.canvas.winfo_height() or 700) / 2,
            text="There are no active prizes in the lucky draw system.",
            fill="#ffffff",
            font=("Helvetica", 18, "bold"),
            tags="result",
        )

    def _show_result(self, entry: PoolEntry, outcome: DrawOutcome | None) -> None:
        self.canvas.delete("result")
        width = self.canvas.winfo_width() or 900
        height = self.canvas.winfo_height() or 700
        self.canvas.create_rectangle(
            width * 0.2,
            height * 0.72,
            width * 0.8,
            height * 0.94,
            fill="#0d0f2b",
            outline="#ff5e5b",
            width=3,
            tags="result",
        )
        headline = outcome.message if outcome and outcome.message else "Congratulations!"
        self.canvas.create_text(
            width / 2,
            height * 0.77,
            text=headline,
            fill="#ffe66d",
            font=("Helvetica", 18, "bold"),
            tags="result",
        )
        detail = entry.name
        if entry.description:
            detail = f"{entry.name} · {entry.description}"
        if outcome and not outcome.is_winner:
            detail = f"Landed on {detail}"
        self.canvas.create_text(
            width / 2,
            height * 0.86,
            text=detail,
            fill="#ffffff",
            font=("Helvetica", 14, "bold"),
            tags="result",
        )
        if outcome and outcome.is_winner:
            self._spawn_particles()
            if self.audio_ready and self.win_sound:
                try:
                    self.win_sound.play()
                except pygame.error as exc:
                    logger.warning("Win sound failed: %s", exc)

    def _spawn_particles(self) -> None:
        self.particles = []
        width = self.canvas.winfo_width() or 900
        height = self.canvas.winfo_height() or 700
        center_x = width / 2
        center_y = height / 2
        colors = ["#ff5e5b", "#ffe66d", "#00f5d4", "#9b5de5", "#f15bb5"]
        for _ in range(120):
            angle = random.uniform(0, 2 * math.pi)
            speed = random.uniform(2.5, 7.5)
            size = random.randint(4, 8)
            particle_id = self.canvas.create_oval(
                center_x - size,
                center_y - size,
                center_x + size,
                center_y + size,
                fill=random.choice(colors),
                outline="",
                tags="particle",
            )
            self.particles.append(
                {
                    "id": particle_id,
                    "vx": math.cos(angle) * speed,
                    "vy": math.sin(angle) * speed,
                    "life": random.randint(40, 70),
                }
            )

    def _animate_particles(self) -> None:
        for particle in list(self.particles):
            self.canvas.move(particle["id"], particle["vx"], particle["vy"])
            particle["vy"] += 0.25
            particle["life"] -= 1
            if particle["life"] <= 0:
                self.canvas.delete(particle["id"])
                self.particles.remove(particle)

    def _build_ambient_layer(self) -> None:
        self.canvas.delete("ambient")
        width = self.canvas.winfo_width() or 900
        height = self.canvas.winfo_height() or 700
        star_count = 25 if self.profile.compact else 200
        self.ambient_particles = []
        for _ in range(star_count):
            x = random.uniform(0, width)
            y = random.uniform(0, height)
            size = random.uniform(0.5, 1.5)
            particle_id = self.canvas.create_oval(
                x - size, y - size, x + size, y + size, fill="#ffffff", outline="", tags="ambient"
            )
            self.ambient_particles.append({"id": particle_id, "phase": random.uniform(0, 3), "speed": random.uniform(2, 4)})
        self.canvas.tag_lower("ambient")
        if self.background_id is not None:
            self.canvas.tag_lower(self.background_id)

    def _animate_ambient(self) -> None:
        now = time.monotonic()
        for star in self.ambient_particles:
            pulse = abs(math.sin((now + star["phase"]) * math.pi / star["speed"]))
            value = int(90 + pulse * 165)
            self.canvas.itemconfigure(star["id"], fill=f"#{value:02x}{value:02x}{value:02x}")

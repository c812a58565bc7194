"""Pygame UI shell for the reaction battery.

Tasks live under a "Tasks" submenu:
- Central-Peripheral Span (sequence recall, central vs peripheral cells)
- Span Blocks (digits, letters, colors, shapes)
- Color Reaction and Edge Color Reaction (go/no-go)
- Five Target Reaction (multi-target reaching)
- Central-Peripheral Wait (central cue, then a peripheral target)

Deterministic timing/scoring/RNG/state lives in the engine modules.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import pygame

from .clock import RealClock
from .cognitive_core import EngineSnapshot, LitCell
from .color_reaction import build_color_reaction_task, build_edge_color_reaction_task
from .config import Settings, load_settings
from .five_target import build_five_target_task
from .matching import CellLayout, GridLayout
from .results import Report
from .sinks import JsonLinesSink, RecordingSink, fan_out
from .span_task import build_central_peripheral_span_task, build_span_blocks_task
from .stimuli import GridGeometry, InsufficientSpaceError
from .wait_reaction import build_wait_reaction_task

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 640)
TARGET_FPS = 60

BG = (26, 78, 138)
CELL_IDLE = (18, 52, 96)
CELL_CENTRAL = (24, 64, 112)
TEXT_MAIN = (238, 245, 255)
TEXT_MUTED = (186, 200, 224)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


class TaskEngine(Protocol):
    @property
    def report(self) -> Report | None: ...
    def snapshot(self) -> EngineSnapshot: ...
    def start(self) -> None: ...
    def stop(self) -> Report | None: ...
    def update(self) -> None: ...
    def submit_response(self, cell: int, x: float | None = None, y: float | None = None) -> bool: ...
    def set_layout(self, layout: CellLayout | None) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the root screen; it handles its own quit.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._activate()
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._is_root:
                self._app.quit()
            else:
                self._app.pop()

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def _activate(self) -> None:
        if not self._items:
            return
        self._items[self._selected].action()

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill(BG)

        title = self._title_font.render(self._title, True, TEXT_MAIN)
        surface.blit(title, title.get_rect(midtop=(w // 2, 28)))

        row_h = 40
        y = 100
        for idx, item in enumerate(self._items):
            row = pygame.Rect(w // 2 - 220, y, 440, row_h - 6)
            selected = idx == self._selected
            pygame.draw.rect(surface, (244, 248, 255) if selected else (18, 52, 96), row)
            pygame.draw.rect(surface, (120, 142, 196), row, 1)
            color = (14, 26, 74) if selected else TEXT_MAIN
            text = self._item_font.render(item.label, True, color)
            surface.blit(text, (row.x + 12, row.y + (row.h - text.get_height()) // 2))
            y += row_h

        foot = self._hint_font.render("Enter/Space: Select  |  Esc/Backspace: Back", True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 12)))


class TaskScreen:
    """Hosts one grid task: Enter starts, clicks respond, Esc stops or leaves."""

    def __init__(
        self,
        app: App,
        *,
        engine_factory: Callable[[], TaskEngine],
        geometry: GridGeometry | None = None,
    ) -> None:
        self._app = app
        self._engine: TaskEngine = engine_factory()
        self._geometry = geometry or GridGeometry()
        self._layout: GridLayout | None = None
        self._abort: str | None = None

        self._small_font = pygame.font.Font(None, 26)
        self._cell_font = pygame.font.Font(None, 30)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            if event.key in (pygame.K_RETURN, pygame.K_KP_ENTER):
                if not self._engine.snapshot().running:
                    self._abort = None
                    self._engine.start()
            elif event.key == pygame.K_ESCAPE:
                if self._engine.snapshot().running:
                    self._engine.stop()
                else:
                    self._app.pop()
            return

        if event.type == pygame.MOUSEBUTTONDOWN and getattr(event, "button", 0) == 1:
            if self._layout is None:
                return
            x, y = event.pos
            cell = self._layout.cell_at(x, y)
            if cell is not None:
                self._engine.submit_response(cell, x, y)

    def render(self, surface: pygame.Surface) -> None:
        try:
            self._engine.update()
        except InsufficientSpaceError as exc:
            # The engine has already ended the session and emitted its report.
            logger.exception("task aborted")
            self._abort = str(exc)
        snap = self._engine.snapshot()

        surface.fill(BG)
        w, h = surface.get_size()

        title = self._app.font.render(snap.title, True, TEXT_MAIN)
        surface.blit(title, (24, 16))

        progress = f"{snap.trial_number}/{snap.trials_total}" if snap.trials_total else ""
        if snap.block:
            progress = f"{snap.block}  {progress}"
        status = f"{progress}   hits {snap.hits}  errors {snap.errors}  misses {snap.misses}"
        if snap.difficulty_label:
            status += f"   {snap.difficulty_label}"
        surface.blit(self._small_font.render(status, True, TEXT_MUTED), (24, 52))

        self._layout = self._grid_layout(w, h)
        self._engine.set_layout(self._layout)
        self._draw_grid(surface, snap.lit_cells)

        footer = snap.prompt
        if self._abort is not None:
            footer = f"Aborted: {self._abort}"
        surface.blit(self._small_font.render(footer, True, TEXT_MAIN), (24, h - 34))

        report = self._engine.report
        if report is not None and not snap.running:
            self._draw_summary(surface, report)

    def _grid_layout(self, w: int, h: int) -> GridLayout:
        n = self._geometry.size
        gap = 4.0
        avail = min(w - 320, h - 130)
        cell_px = max(8.0, (avail - gap * (n - 1)) / n)
        return GridLayout(
            geometry=self._geometry,
            origin_x=24.0,
            origin_y=86.0,
            cell_px=cell_px,
            gap_px=gap,
        )

    def _draw_grid(self, surface: pygame.Surface, lit: tuple[LitCell, ...]) -> None:
        layout = self._layout
        assert layout is not None
        by_cell = {c.cell: c for c in lit}
        size = int(layout.cell_px)
        for cell in range(self._geometry.cell_count):
            cx, cy = layout.cell_center(cell)
            rect = pygame.Rect(0, 0, size, size)
            rect.center = (int(cx), int(cy))
            base = CELL_CENTRAL if self._geometry.is_central(cell) else CELL_IDLE
            pygame.draw.rect(surface, base, rect, border_radius=4)
            lit_cell = by_cell.get(cell)
            if lit_cell is not None:
                self._draw_lit(surface, rect, lit_cell)

    def _draw_lit(self, surface: pygame.Surface, rect: pygame.Rect, lit: LitCell) -> None:
        color = pygame.Color(lit.color)
        if lit.label in ("square", "circle", "diamond", "triangle"):
            inner = rect.inflate(-rect.w // 3, -rect.h // 3)
            if lit.label == "square":
                pygame.draw.rect(surface, color, inner)
            elif lit.label == "circle":
                pygame.draw.circle(surface, color, inner.center, inner.w // 2)
            elif lit.label == "diamond":
                pygame.draw.polygon(
                    surface, color, [inner.midtop, inner.midright, inner.midbottom, inner.midleft]
                )
            else:
                pygame.draw.polygon(surface, color, [inner.midtop, inner.bottomright, inner.bottomleft])
            return
        if lit.label:
            text = self._cell_font.render(lit.label, True, color)
            surface.blit(text, text.get_rect(center=rect.center))
            return
        pygame.draw.rect(surface, color, rect, border_radius=4)

    def _draw_summary(self, surface: pygame.Surface, report: Report) -> None:
        w, _ = surface.get_size()
        x = w - 280
        y = 86
        surface.blit(self._small_font.render("Results", True, TEXT_MAIN), (x, y))
        y += 30
        for name, value in report.metrics.items():
            line = self._small_font.render(f"{name}: {value}", True, TEXT_MUTED)
            surface.blit(line, (x, y))
            y += 24


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run(*, max_frames: int | None = None, event_injector: Callable[[int], None] | None = None) -> int:
    settings = load_settings()
    _configure_logging(settings)

    pygame.init()
    pygame.display.set_caption("Reaction Battery")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)

    recorder = RecordingSink()
    emit_event = recorder.emit_event
    emit_score = recorder.emit_score
    if settings.events_path is not None:
        file_sink = JsonLinesSink(settings.events_path)
        emit_event = fan_out(recorder.emit_event, file_sink.emit_event)
        emit_score = fan_out(recorder.emit_score, file_sink.emit_score)
        logger.info("writing session events to %s", settings.events_path)

    real_clock = RealClock()

    def open_task(builder: Callable[..., TaskEngine]) -> Callable[[], None]:
        def open_() -> None:
            seed = settings.seed if settings.seed is not None else _new_seed()
            app.push(
                TaskScreen(
                    app,
                    engine_factory=lambda: builder(
                        clock=real_clock,
                        seed=seed,
                        emit_event=emit_event,
                        emit_score=emit_score,
                    ),
                )
            )

        return open_

    tasks_menu = MenuScreen(
        app,
        "Tasks",
        [
            MenuItem("Central-Peripheral Span", open_task(build_central_peripheral_span_task)),
            MenuItem("Span Blocks", open_task(build_span_blocks_task)),
            MenuItem("Color Reaction", open_task(build_color_reaction_task)),
            MenuItem("Edge Color Reaction", open_task(build_edge_color_reaction_task)),
            MenuItem("Five Target Reaction", open_task(build_five_target_task)),
            MenuItem("Central-Peripheral Wait", open_task(build_wait_reaction_task)),
            MenuItem("Back", app.pop),
        ],
    )

    main_items = [
        MenuItem("Tasks", lambda: app.push(tasks_menu)),
        MenuItem("Quit", app.quit),
    ]

    app.push(MenuScreen(app, "Main Menu", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0

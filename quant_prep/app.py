"""Pygame front end for the timed mental-math trainer.

All quiz logic (question generation, countdown, scoring, history) lives in the
core modules; the screens here only capture input, call into the
``SessionController`` and render its snapshots. The countdown is driven by a
``ClockScheduler`` pumped once per frame.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Protocol, cast

import pygame

from .clock import ClockScheduler, RealClock
from .history import HistoryStore, SqliteHistoryStore, score_series
from .question_generator import GenerationConfig, Operator
from .session import SessionController, SessionEvent, SessionEventKind, SessionStatus
from .settings import DECIMALS_RANGE, DIGITS_RANGE, LOG_LEVEL_ENV, SettingsStore, default_history_db_path

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

BG = (3, 9, 78)
PANEL_BG = (8, 18, 104)
BORDER = (226, 236, 255)
TEXT_MAIN = (238, 245, 255)
TEXT_MUTED = (186, 200, 224)
ACTIVE_BG = (244, 248, 255)
ACTIVE_TEXT = (14, 26, 74)
BAD = (235, 160, 160)

_ANSWER_CHARS = set("0123456789.-")


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


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
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def reset(self, root: Screen) -> None:
        self._screens = [root]

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


def _draw_lines(
    surface: pygame.Surface,
    font: pygame.font.Font,
    lines: list[str],
    *,
    x: int,
    y: int,
    color: tuple[int, int, int] = TEXT_MAIN,
    step: int = 36,
) -> int:
    for line in lines:
        surface.blit(font.render(line, True, color), (x, y))
        y += step
    return y


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
            if self._items:
                self._items[self._selected].action()
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._is_root:
                self._app.quit()
            else:
                self._app.pop()

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill(BG)

        margin = max(10, min(26, w // 34))
        frame = pygame.Rect(margin, margin, max(260, w - margin * 2), max(220, h - margin * 2))
        pygame.draw.rect(surface, PANEL_BG, frame)
        pygame.draw.rect(surface, BORDER, frame, 2)

        title = self._title_font.render(self._title, True, TEXT_MAIN)
        surface.blit(title, title.get_rect(midtop=(frame.centerx, frame.y + 18)))

        row_h = 40
        y = frame.y + 80
        for idx, item in enumerate(self._items):
            row = pygame.Rect(frame.x + 40, y, frame.w - 80, row_h)
            selected = idx == self._selected
            if selected:
                pygame.draw.rect(surface, ACTIVE_BG, row)
            else:
                pygame.draw.rect(surface, (62, 84, 152), row, 1)
            text = self._item_font.render(item.label, True, ACTIVE_TEXT if selected else TEXT_MAIN)
            surface.blit(text, (row.x + 10, row.y + (row.h - text.get_height()) // 2))
            y += row_h + 8

        footer = "Enter/Space: Select  |  Esc/Backspace: Back"
        foot = self._hint_font.render(footer, True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


class LoginScreen:
    """Captures the username that keys the score history."""

    def __init__(self, app: App, *, on_login: Callable[[str], None]) -> None:
        self._app = app
        self._on_login = on_login
        self._text = ""
        self._title_font = pygame.font.Font(None, 52)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            if self._text.strip():
                self._on_login(self._text.strip())
        elif event.key == pygame.K_BACKSPACE:
            self._text = self._text[:-1]
        elif event.key == pygame.K_ESCAPE:
            self._app.quit()
        elif event.unicode and event.unicode.isprintable() and len(self._text) < 32:
            self._text += event.unicode

    def render(self, surface: pygame.Surface) -> None:
        surface.fill(BG)
        title = self._title_font.render("Welcome to Quant Prep", True, TEXT_MAIN)
        surface.blit(title, (40, 60))
        y = _draw_lines(
            surface,
            self._app.font,
            ["Please enter a username to track your progress.", ""],
            x=40,
            y=140,
            color=TEXT_MUTED,
        )
        box = pygame.Rect(40, y, 420, 48)
        pygame.draw.rect(surface, PANEL_BG, box)
        pygame.draw.rect(surface, BORDER, box, 2)
        surface.blit(self._app.font.render(self._text, True, TEXT_MAIN), (box.x + 10, box.y + 12))
        _draw_lines(surface, self._app.font, ["Press Enter to continue."], x=40, y=box.bottom + 24, color=TEXT_MUTED)


class HomeScreen:
    def __init__(self, app: App, *, username: str) -> None:
        self._app = app
        self._username = username
        self._title_font = pygame.font.Font(None, 64)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN and event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE, pygame.K_RETURN):
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        surface.fill(BG)
        title = self._title_font.render(f"Hello, {self._username}!", True, TEXT_MAIN)
        surface.blit(title, (40, 60))
        _draw_lines(
            surface,
            self._app.font,
            [
                "Welcome to your Quant Prep hub. Practice Mental Math,",
                "track your performance over time, and sharpen your skills.",
                "",
                "Use the menu to get started. Good luck!",
                "",
                "Press Esc to go back.",
            ],
            x=40,
            y=150,
        )


@dataclass(frozen=True, slots=True)
class _ConfigRow:
    label: str
    field_name: str | None = None
    operator: Operator | None = None


_CONFIG_ROWS: tuple[_ConfigRow, ...] = (
    _ConfigRow("Addition max digits", field_name="addition_max_digits"),
    _ConfigRow("Addition max decimals", field_name="addition_max_decimals"),
    _ConfigRow("Subtraction max digits", field_name="subtraction_max_digits"),
    _ConfigRow("Subtraction max decimals", field_name="subtraction_max_decimals"),
    _ConfigRow("Addition", operator=Operator.ADD),
    _ConfigRow("Subtraction", operator=Operator.SUB),
    _ConfigRow("Multiplication (whole #)", operator=Operator.MUL),
    _ConfigRow("Division (whole #)", operator=Operator.DIV),
)


def adjust_config(config: GenerationConfig, row_index: int, delta: int) -> GenerationConfig:
    """Apply one widget step to ``config``; numeric fields stay in widget range."""

    row = _CONFIG_ROWS[row_index]
    if row.operator is not None:
        return config.with_operator(row.operator, row.operator not in config.enabled_operators)
    field_name = cast(str, row.field_name)
    lo, hi = DIGITS_RANGE if field_name.endswith("digits") else DECIMALS_RANGE
    current = int(getattr(config, field_name))
    value = max(lo, min(hi, current + delta))
    return replace(config, **{field_name: value})


class MentalMathScreen:
    """Configuration panel plus the 120-second challenge.

    Answers are checked on every keystroke; a correct answer advances
    immediately and clears the input field.
    """

    def __init__(self, app: App, *, controller: SessionController, settings: SettingsStore) -> None:
        self._app = app
        self._controller = controller
        self._settings = settings
        self._config = settings.generation
        self._row = 0
        self._input = ""
        self._notice: str | None = None
        self._unsubscribe = controller.subscribe(self._on_session_event)

        self._big_font = pygame.font.Font(None, 72)
        self._small_font = pygame.font.Font(None, 26)

    def _on_session_event(self, event: SessionEvent) -> None:
        if event.kind in (SessionEventKind.STARTED, SessionEventKind.SCORED, SessionEventKind.FINISHED):
            self._input = ""
        if event.kind is SessionEventKind.STARTED:
            self._notice = None
        elif event.kind is SessionEventKind.PERSIST_FAILED:
            self._notice = "Score could not be saved."

    def _leave(self) -> None:
        self._controller.cancel()
        self._unsubscribe()
        self._app.pop()

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        running = self._controller.status is SessionStatus.RUNNING

        # Emergency exit from a running challenge.
        shift = getattr(event, "mod", 0) & pygame.KMOD_SHIFT
        if event.key == pygame.K_F12 or (event.key == pygame.K_ESCAPE and shift):
            self._leave()
            return

        if running:
            self._handle_answer_key(event)
            return

        if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._leave()
        elif event.key in (pygame.K_UP, pygame.K_w):
            self._row = (self._row - 1) % len(_CONFIG_ROWS)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._row = (self._row + 1) % len(_CONFIG_ROWS)
        elif event.key in (pygame.K_LEFT, pygame.K_a):
            self._config = adjust_config(self._config, self._row, -1)
        elif event.key in (pygame.K_RIGHT, pygame.K_d, pygame.K_SPACE):
            self._config = adjust_config(self._config, self._row, 1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            self._settings.set_generation(self._config)
            self._controller.start(self._config)

    def _handle_answer_key(self, event: pygame.event.Event) -> None:
        if event.key in (pygame.K_BACKSPACE, pygame.K_DELETE):
            self._input = self._input[:-1]
        elif event.unicode and event.unicode in _ANSWER_CHARS and len(self._input) < 16:
            self._input += event.unicode
        else:
            return
        # Scoring clears the field through the SCORED event.
        self._controller.submit_answer(self._input)

    def render(self, surface: pygame.Surface) -> None:
        surface.fill(BG)
        snap = self._controller.snapshot()
        font = self._app.font

        surface.blit(font.render("Timed Mental Math (120s)", True, TEXT_MAIN), (40, 24))
        surface.blit(font.render(f"Time Left: {snap.seconds_remaining}s", True, TEXT_MAIN), (40, 64))
        surface.blit(font.render(f"Score: {snap.score}", True, TEXT_MAIN), (260, 64))

        if snap.status is SessionStatus.RUNNING:
            self._render_question(surface, snap.display_text, show_input=snap.accepting_answers)
            hint = "Type your answer; it is checked as you type. Shift+Esc abandons."
        else:
            if snap.current_question is not None:
                surface.blit(self._big_font.render(snap.display_text, True, TEXT_MAIN), (520, 24))
            self._render_config(surface)
            hint = "Up/Down: choose  Left/Right/Space: change  Enter: start  Esc: back"

        if self._notice:
            surface.blit(self._small_font.render(self._notice, True, BAD), (40, surface.get_height() - 70))
        surface.blit(self._small_font.render(hint, True, TEXT_MUTED), (40, surface.get_height() - 40))

    def _render_question(self, surface: pygame.Surface, text: str, *, show_input: bool) -> None:
        w, _ = surface.get_size()
        panel = pygame.Rect(40, 120, w - 80, 260)
        pygame.draw.rect(surface, PANEL_BG, panel)
        pygame.draw.rect(surface, BORDER, panel, 2)
        q = self._big_font.render(text, True, TEXT_MAIN)
        surface.blit(q, q.get_rect(midtop=(panel.centerx, panel.y + 40)))
        if show_input:
            box = pygame.Rect(0, 0, 300, 56)
            box.midtop = (panel.centerx, panel.y + 150)
            pygame.draw.rect(surface, ACTIVE_BG, box)
            t = self._app.font.render(self._input, True, ACTIVE_TEXT)
            surface.blit(t, t.get_rect(center=box.center))

    def _render_config(self, surface: pygame.Surface) -> None:
        y = 120
        for idx, row in enumerate(_CONFIG_ROWS):
            if row.operator is not None:
                on = row.operator in self._config.enabled_operators
                value = "[x]" if on else "[ ]"
            else:
                value = str(getattr(self._config, cast(str, row.field_name)))
            selected = idx == self._row
            color = ACTIVE_TEXT if selected else TEXT_MAIN
            rect = pygame.Rect(40, y, 460, 32)
            if selected:
                pygame.draw.rect(surface, ACTIVE_BG, rect)
            surface.blit(self._small_font.render(row.label, True, color), (rect.x + 8, rect.y + 7))
            surface.blit(self._small_font.render(value, True, color), (rect.right - 60, rect.y + 7))
            y += 38


class ScoreChartScreen:
    """Line chart of past scores, oldest attempt first."""

    def __init__(self, app: App, *, history: HistoryStore, username: str) -> None:
        self._app = app
        self._history = history
        self._username = username
        self._points: list[tuple[str, int]] = []
        self._error: str | None = None
        self._small_font = pygame.font.Font(None, 22)
        self.refresh()

    @property
    def points(self) -> list[tuple[str, int]]:
        return list(self._points)

    def refresh(self) -> None:
        try:
            self._points = score_series(self._history.read_all(self._username))
            self._error = None
        except Exception as exc:
            logger.warning("Could not load history for %s: %s", self._username, exc)
            self._points = []
            self._error = "History is unavailable."

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN and event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE, pygame.K_RETURN):
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        surface.fill(BG)
        font = self._app.font
        if self._error is not None:
            _draw_lines(surface, font, [self._error, "Press Esc to go back."], x=40, y=60)
            return
        if not self._points:
            _draw_lines(
                surface,
                font,
                ["No past sessions found.", "Try completing a mental math session!", "", "Press Esc to go back."],
                x=40,
                y=60,
            )
            return

        surface.blit(font.render("Mental Math Scores Over Time", True, TEXT_MAIN), (40, 24))
        w, h = surface.get_size()
        plot = pygame.Rect(80, 80, w - 140, h - 170)
        pygame.draw.rect(surface, PANEL_BG, plot)
        pygame.draw.line(surface, BORDER, plot.bottomleft, plot.bottomright, 2)
        pygame.draw.line(surface, BORDER, plot.bottomleft, plot.topleft, 2)

        # y axis begins at zero.
        top = max(1, max(score for _, score in self._points))
        n = len(self._points)
        coords: list[tuple[int, int]] = []
        for i, (_, score) in enumerate(self._points):
            x = plot.x + (plot.w * (i + 0.5) / n)
            y = plot.bottom - plot.h * score / top
            coords.append((int(x), int(y)))
        if len(coords) > 1:
            pygame.draw.lines(surface, (75, 192, 192), False, coords, 3)
        for (label, score), (x, y) in zip(self._points, coords):
            pygame.draw.circle(surface, (75, 192, 192), (x, y), 5)
            surface.blit(self._small_font.render(str(score), True, TEXT_MAIN), (x - 6, y - 22))
            if n <= 10:
                tag = self._small_font.render(label, True, TEXT_MUTED)
                surface.blit(tag, tag.get_rect(midtop=(x, plot.bottom + 8)))
        surface.blit(self._small_font.render(f"max {top}", True, TEXT_MUTED), (20, plot.y))


def _configure_logging() -> None:
    root = logging.getLogger()
    if root.handlers:
        return
    level = os.environ.get(LOG_LEVEL_ENV, "INFO").strip().upper() or "INFO"
    logging.basicConfig(level=getattr(logging, level, logging.INFO))


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    settings_path: Path | None = None,
    db_path: Path | None = None,
) -> int:
    _configure_logging()
    pygame.init()

    pygame.display.set_caption("Quant Prep")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    frame_clock = pygame.time.Clock()

    app = App(surface=surface, font=font)

    settings = SettingsStore(settings_path or SettingsStore.default_path())
    history = SqliteHistoryStore(db_path or default_history_db_path())
    scheduler = ClockScheduler(RealClock())

    def open_mental_math() -> None:
        controller = SessionController(username=settings.username, history=history, scheduler=scheduler)
        app.push(MentalMathScreen(app, controller=controller, settings=settings))

    def open_chart() -> None:
        app.push(ScoreChartScreen(app, history=history, username=settings.username))

    def switch_user() -> None:
        settings.clear_username()
        app.reset(LoginScreen(app, on_login=login))

    def show_main_menu() -> None:
        items = [
            MenuItem("Home", lambda: app.push(HomeScreen(app, username=settings.username))),
            MenuItem("Mental Math", open_mental_math),
            MenuItem("Scores Chart", open_chart),
            MenuItem("Switch User", switch_user),
            MenuItem("Quit", app.quit),
        ]
        app.reset(MenuScreen(app, "Quant Prep", items, is_root=True))

    def login(username: str) -> None:
        settings.set_username(username)
        logger.info("Logged in as %s", username)
        show_main_menu()

    if settings.username:
        show_main_menu()
    else:
        app.reset(LoginScreen(app, on_login=login))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            scheduler.pump()
            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            frame_clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0

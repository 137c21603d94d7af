from __future__ import annotations

import json
import os
from pathlib import Path


def _key(key: int, unicode: str = "") -> None:
    import pygame

    pygame.event.post(pygame.event.Event(pygame.KEYDOWN, {"key": key, "unicode": unicode, "mod": 0}))


def test_ui_smoke_login_then_start_mental_math(tmp_path: Path) -> None:
    # Headless SDL for CI.
    os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
    os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

    import pygame

    from quant_prep.app import run

    settings_path = tmp_path / "settings.json"

    def inject(frame: int) -> None:
        # Login as "ada" -> Main Menu -> Mental Math -> toggle a row -> start -> type
        if frame == 1:
            _key(pygame.K_a, "a")
        elif frame == 2:
            _key(pygame.K_d, "d")
        elif frame == 3:
            _key(pygame.K_a, "a")
        elif frame == 4:
            _key(pygame.K_RETURN)
        elif frame == 5:
            _key(pygame.K_DOWN)
        elif frame == 6:
            _key(pygame.K_RETURN)
        elif frame == 7:
            _key(pygame.K_RIGHT)
        elif frame == 8:
            _key(pygame.K_RETURN)
        elif frame == 9:
            _key(pygame.K_1, "1")
        elif frame == 10:
            _key(pygame.K_BACKSPACE)

    assert run(max_frames=20, event_injector=inject, settings_path=settings_path, db_path=tmp_path / "h.sqlite3") == 0

    saved = json.loads(settings_path.read_text(encoding="utf-8"))["settings"]
    assert saved["username"] == "ada"
    # Right arrow on the first row raised addition digits from 2 to 3.
    assert saved["generation"]["addition_max_digits"] == 3


def test_ui_smoke_remembered_user_opens_chart(tmp_path: Path) -> None:
    os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
    os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

    import pygame

    from quant_prep.app import run
    from quant_prep.history import HistoryEntry, SqliteHistoryStore
    from quant_prep.settings import SettingsStore

    settings_path = tmp_path / "settings.json"
    SettingsStore(settings_path).set_username("ada")
    db_path = tmp_path / "h.sqlite3"
    store = SqliteHistoryStore(db_path)
    store.append("ada", HistoryEntry("2026-01-01T00:00:00.000Z", 12))
    store.append("ada", HistoryEntry("2026-01-02T00:00:00.000Z", 15))

    def inject(frame: int) -> None:
        # Main Menu -> Scores Chart -> back -> Home -> back
        if frame == 1:
            _key(pygame.K_DOWN)
        elif frame == 2:
            _key(pygame.K_DOWN)
        elif frame == 3:
            _key(pygame.K_RETURN)
        elif frame == 6:
            _key(pygame.K_ESCAPE)
        elif frame == 7:
            _key(pygame.K_UP)
        elif frame == 8:
            _key(pygame.K_UP)
        elif frame == 9:
            _key(pygame.K_RETURN)
        elif frame == 11:
            _key(pygame.K_ESCAPE)

    assert run(max_frames=15, event_injector=inject, settings_path=settings_path, db_path=db_path) == 0

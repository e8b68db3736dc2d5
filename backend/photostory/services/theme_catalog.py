"""Read-only theme lookup.

Themes are owned by the catalog service; the render backend only needs a
lookup by id. StaticThemeCatalog ships one built-in theme per category and
falls back to the default theme for unknown ids so an old project never
fails to render because its theme was retired.
"""

import logging
from typing import Protocol

from photostory.exceptions import ThemeNotFoundError
from photostory.schemas.theme import Theme, ThemeColors, ThemeFonts

logger = logging.getLogger(__name__)

DEFAULT_THEME_ID = "default"


class ThemeCatalog(Protocol):
    def get(self, theme_id: str) -> Theme: ...


def _theme(theme_id: str, name: str, category: str, colors: dict[str, str], **kwargs) -> Theme:
    return Theme(id=theme_id, name=name, category=category, colors=ThemeColors(**colors), **kwargs)


BUILTIN_THEMES: list[Theme] = [
    _theme(
        DEFAULT_THEME_ID,
        "Classic",
        "default",
        {"primary": "#6C5CE7", "secondary": "#A29BFE", "accent": "#FD79A8", "background": "#1A1A2E", "text": "#FFFFFF"},
    ),
    _theme(
        "graduation-classic",
        "Graduation Day",
        "graduation",
        {"primary": "#1E3A5F", "secondary": "#C9A227", "accent": "#FFFFFF", "background": "#0F1C2E", "text": "#F5F5F5"},
        default_transition="slide-left",
        fonts=ThemeFonts(title="Noto Serif", body="Noto Sans"),
    ),
    _theme(
        "wedding-romance",
        "Wedding Romance",
        "wedding",
        {"primary": "#E8C4C4", "secondary": "#F7E7CE", "accent": "#D4A5A5", "background": "#2B1D1D", "text": "#FFF8F0"},
        default_transition="cross-dissolve",
        default_transition_duration=1.5,
        default_effect="kenburns-zoom-out",
        fonts=ThemeFonts(title="Noto Serif", body="Noto Serif"),
    ),
    _theme(
        "birthday-party",
        "Birthday Party",
        "birthday",
        {"primary": "#FF6B6B", "secondary": "#FFE66D", "accent": "#4ECDC4", "background": "#2D1B4E", "text": "#FFFFFF"},
        default_transition="zoom-in",
        default_transition_duration=0.8,
    ),
    _theme(
        "baby-first-year",
        "First Year",
        "baby",
        {"primary": "#A8D8EA", "secondary": "#FFD3B6", "accent": "#FFAAA5", "background": "#2C3E50", "text": "#FFFFFF"},
        default_transition="fade",
        default_effect="kenburns-pan-right",
    ),
    _theme(
        "travel-journal",
        "Travel Journal",
        "travel",
        {"primary": "#00B894", "secondary": "#0984E3", "accent": "#FDCB6E", "background": "#0B2027", "text": "#FFFFFF"},
        default_transition="slide-left",
        default_effect="kenburns-pan-left",
    ),
    _theme(
        "business-report",
        "Business Report",
        "business",
        {"primary": "#2D3436", "secondary": "#636E72", "accent": "#0984E3", "background": "#12181B", "text": "#FFFFFF"},
        default_transition="wipe",
        default_transition_duration=0.6,
        default_effect="kenburns-zoom-in",
    ),
    _theme(
        "memorial-tribute",
        "In Loving Memory",
        "memorial",
        {"primary": "#B2BEC3", "secondary": "#DFE6E9", "accent": "#FFEAA7", "background": "#101010", "text": "#F0F0F0"},
        default_transition="cross-dissolve",
        default_transition_duration=2.0,
        default_effect="kenburns-zoom-out",
        fonts=ThemeFonts(title="Noto Serif", body="Noto Serif"),
    ),
    _theme(
        "sports-highlights",
        "Game Highlights",
        "sports",
        {"primary": "#D63031", "secondary": "#FDCB6E", "accent": "#00CEC9", "background": "#0A0A0A", "text": "#FFFFFF"},
        default_transition="glitch",
        default_transition_duration=0.5,
    ),
    _theme(
        "holiday-season",
        "Holiday Season",
        "holiday",
        {"primary": "#C0392B", "secondary": "#27AE60", "accent": "#F1C40F", "background": "#14251A", "text": "#FFFFFF"},
        default_transition="circle-wipe",
    ),
]


class StaticThemeCatalog:
    """In-process catalog of themes."""

    def __init__(self, themes: list[Theme] | None = None, *, strict: bool = False):
        self._themes = {theme.id: theme for theme in (themes if themes is not None else BUILTIN_THEMES)}
        self._strict = strict

    def get(self, theme_id: str) -> Theme:
        theme = self._themes.get(theme_id)
        if theme is not None:
            return theme
        if self._strict or DEFAULT_THEME_ID not in self._themes:
            raise ThemeNotFoundError(theme_id)
        logger.warning(f"[THEME] Unknown theme '{theme_id}', using '{DEFAULT_THEME_ID}'")
        return self._themes[DEFAULT_THEME_ID]

    def list(self, category: str | None = None) -> list[Theme]:
        return [t for t in self._themes.values() if category is None or t.category == category]

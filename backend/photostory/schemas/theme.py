from pydantic import Field

from photostory.schemas.timeline import CamelModel


class ThemeColors(CamelModel):
    primary: str = "#6C5CE7"
    secondary: str = "#A29BFE"
    accent: str = "#FD79A8"
    background: str = "#1A1A2E"
    text: str = "#FFFFFF"


class ThemeFonts(CamelModel):
    title: str = "Noto Sans"
    body: str = "Noto Sans"


class Theme(CamelModel):
    """Read-only catalog entry."""

    id: str
    name: str
    category: str = "default"
    colors: ThemeColors = Field(default_factory=ThemeColors)
    fonts: ThemeFonts = Field(default_factory=ThemeFonts)
    default_transition: str = "fade"
    default_transition_duration: float = 1.0
    default_effect: str = "kenburns-zoom-in"
    # Ordered allowed variants; the first entry is the fallback
    intro_variants: list[str] = Field(default_factory=list)
    outro_variants: list[str] = Field(default_factory=list)
    narration_style: str | None = None

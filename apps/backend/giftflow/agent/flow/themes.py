from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


Theme = Literal["playful-pastel", "elegant-dark", "warm-mediterranean", "minimal-zen"]


@dataclass(frozen=True)
class ThemeInfo:
    name: str
    label: str
    description: str
    tone: str


THEMES: dict[str, ThemeInfo] = {
    "playful-pastel": ThemeInfo(
        name="playful-pastel",
        label="Playful Pastel",
        description="Soft pink and purple colors, fun and lighthearted",
        tone="birthdays, casual surprises, inside jokes",
    ),
    "elegant-dark": ThemeInfo(
        name="elegant-dark",
        label="Elegant Dark",
        description="Deep navy with purple and gold accents, sophisticated and mysterious",
        tone="proposals, formal announcements, romantic moments",
    ),
    "warm-mediterranean": ThemeInfo(
        name="warm-mediterranean",
        label="Warm Mediterranean",
        description="Terracotta, teal and golden tones, inviting and cozy",
        tone="travel reveals, family moments, celebrations",
    ),
    "minimal-zen": ThemeInfo(
        name="minimal-zen",
        label="Minimal Zen",
        description="Pure black and white, clean and focused",
        tone="serious announcements, minimalist style, professional",
    ),
}


def is_theme(value: str) -> bool:
    return value in THEMES

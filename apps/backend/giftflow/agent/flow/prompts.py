from __future__ import annotations

import json

from .schema import PLACEHOLDER_PREFIX
from .themes import THEMES
from .validate import MAX_GENERATED_NODES, MIN_GENERATED_NODES


_NODE_CATALOG = (
    "SCREEN TYPES (closed set, use nothing else):\n"
    "1. hero: opening or story screen.\n"
    "   content: headline (1-200 chars), body (optional, <=1000), backgroundImage (optional {url, alt})\n"
    "2. choice: multiple choice question. Records the answer, never branches.\n"
    "   content: question (1-200), options (2-4 items of {id, label 1-100}), allowMultiple (bool, default false)\n"
    "3. text-input: free text question.\n"
    "   content: question (1-200), placeholder (optional, <=100), maxLength (int 1-500, default 200)\n"
    "4. reveal: the big moment (proposal, announcement, gift reveal).\n"
    "   content: headline (1-200), body (optional, <=1000), cta (optional {label 1-50, url}),\n"
    "            confetti (bool, default true), backgroundImage (optional {url, alt})\n"
    "5. media: a single image with an optional caption.\n"
    "   content: image ({url, alt}, required), caption (optional, <=200)\n"
    "6. end: closing thank-you screen.\n"
    "   content: headline (1-200), body (optional, <=500), sharePrompt (optional, <=100)\n"
)


def _theme_guide() -> str:
    lines = ["THEMES (pick the one matching the emotional tone):"]
    for theme in THEMES.values():
        lines.append(f"- {theme.name}: {theme.description} ({theme.tone})")
    return "\n".join(lines) + "\n"


_STRUCTURE_RULES = (
    "STRUCTURE RULES:\n"
    "- Linear flows only, no branching.\n"
    f"- {MIN_GENERATED_NODES}-{MAX_GENERATED_NODES} screens in total, 6-8 is the sweet spot.\n"
    "- ALWAYS open with a hero screen that sets the context.\n"
    "- ALWAYS close with an end screen.\n"
    "- At most one reveal screen, placed 80-90% of the way through the flow.\n"
    "- Include 1-2 interactive screens (choice or text-input).\n"
    "- Build anticipation gradually and use the recipient's name when given.\n"
    "- Keep copy short, warm and in the second person.\n"
    "- Do not set backgroundColor, the theme provides colors.\n"
)

_MEDIA_RULES = (
    "IMAGES:\n"
    f'- Never invent image URLs. Write "{PLACEHOLDER_PREFIX}<search keywords>" as the url instead,\n'
    f'  e.g. "{PLACEHOLDER_PREFIX}paris eiffel tower night romantic".\n'
    "- Keywords should be specific but common enough to return a photo.\n"
    "- The same format applies to backgroundImage on hero and reveal screens.\n"
)

_EXAMPLE_FLOW = {
    "title": "A Special Question for Sarah",
    "description": "A little journey to forever",
    "theme": "elegant-dark",
    "nodes": [
        {
            "type": "hero",
            "orderIndex": 0,
            "content": {
                "headline": "Sarah, we need to talk...",
                "body": "Don't worry, it's something wonderful.",
            },
        },
        {
            "type": "choice",
            "orderIndex": 1,
            "content": {
                "question": "Where would you fly with me tomorrow?",
                "options": [
                    {"id": "opt1", "label": "Paris"},
                    {"id": "opt2", "label": "Barcelona"},
                ],
                "allowMultiple": False,
            },
        },
        {
            "type": "media",
            "orderIndex": 2,
            "content": {
                "image": {"url": f"{PLACEHOLDER_PREFIX}paris eiffel tower night", "alt": "Eiffel Tower at night"},
                "caption": "Remember when we dreamed about Paris?",
            },
        },
        {
            "type": "reveal",
            "orderIndex": 3,
            "content": {
                "headline": "Pack your bags: Barcelona, next month!",
                "confetti": True,
            },
        },
        {
            "type": "end",
            "orderIndex": 4,
            "content": {"headline": "I love you, Sarah"},
        },
    ],
}

_OUTPUT_RULES = (
    "OUTPUT FORMAT:\n"
    "Return ONE JSON object and nothing else: no prose, no markdown, no code fences.\n"
    'Shape: {"title": str (1-100), "description": str (optional, <=500), "theme": one of the themes,\n'
    '        "nodes": [{"type": ..., "orderIndex": int, "content": {...}}]}\n'
    "orderIndex starts at 0 and increases by 1 for every node.\n"
    "Example:\n"
)


def build_system_prompt() -> str:
    return (
        "You turn a short description into an emotional, interactive gift experience: "
        "an ordered sequence of screens the recipient clicks through.\n\n"
        + _NODE_CATALOG
        + "\n"
        + _theme_guide()
        + "\n"
        + _STRUCTURE_RULES
        + "\n"
        + _MEDIA_RULES
        + "\n"
        + _OUTPUT_RULES
        + json.dumps(_EXAMPLE_FLOW, indent=2)
        + "\n"
    )


SYSTEM_PROMPT = build_system_prompt()


def build_user_prompt(prompt: str) -> str:
    return f"Gift description:\n{prompt}\n\nGenerate the flow JSON now."

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    """
    Ensure the local package is importable regardless of pytest rootdir selection.

    - `import giftflow...` expects `/apps/backend` on sys.path
    """
    backend_root = Path(__file__).resolve().parent
    if str(backend_root) not in sys.path:
        sys.path.insert(0, str(backend_root))


def build_flow_payload(count: int = 6, theme: str = "playful-pastel") -> dict:
    """A hero ... end flow with ``count`` screens."""
    nodes: list[dict] = [
        {
            "type": "hero",
            "content": {
                "headline": "A surprise for you",
                "backgroundImage": {"url": "UNSPLASH:birthday balloons", "alt": "Balloons"},
            },
        }
    ]
    for i in range(count - 2):
        nodes.append({"type": "text-input", "content": {"question": f"Question {i + 1}?"}})
    nodes.append({"type": "end", "content": {"headline": "Thank you"}})
    return {"title": "Birthday surprise", "description": "For Sam", "theme": theme, "nodes": nodes[:count]}


@pytest.fixture
def store():
    from giftflow.storage import MemoryRowStore

    return MemoryRowStore()


@pytest.fixture
def make_project(store):
    from giftflow.agent.flow.schema import validate_flow
    from giftflow.services.projects import create_project

    def _make(owner_id: str = "user-1", count: int = 5):
        return create_project(owner_id, validate_flow(build_flow_payload(count)), store=store)

    return _make


@pytest.fixture
def positions(store):
    """Current ``(node_id, order_index)`` pairs of a project, in stored order."""

    def _positions(project_id: str) -> list[tuple[str, int]]:
        rows = store.select("nodes", where={"project_id": project_id}, order_by="order_index")
        return [(r["id"], r["order_index"]) for r in rows]

    return _positions


@pytest.fixture
def flow_payload():
    return build_flow_payload

from __future__ import annotations

import pytest

from giftflow.agent.flow.schema import validate_flow
from giftflow.services import projects
from giftflow.services.errors import (
    ContentValidationError,
    InvalidInputError,
    NodeNotFoundError,
    ProjectNotFoundError,
    StoreFailureError,
)
from giftflow.storage import MemoryRowStore, StoreError


class _NodeInsertFails(MemoryRowStore):
    def insert_many(self, table, rows):
        if table == "nodes":
            raise StoreError("connection lost")
        return super().insert_many(table, rows)


class _ReadsFail(MemoryRowStore):
    """Raises on reads of the tables listed in ``failing``."""

    def __init__(self) -> None:
        super().__init__()
        self.failing: set[str] = set()

    def select(self, table, **kwargs):
        if table in self.failing:
            raise StoreError("connection reset")
        return super().select(table, **kwargs)

    def select_one(self, table, **kwargs):
        if table in self.failing:
            raise StoreError("connection reset")
        return super().select_one(table, **kwargs)


def test_create_project_persists_nodes_in_order(store, make_project) -> None:
    project, nodes = make_project(count=5)
    assert project.title == "Birthday surprise"
    assert project.share_slug is None
    assert [n.order_index for n in nodes] == [0, 1, 2, 3, 4]
    assert nodes[0].content["backgroundImage"]["url"] == "UNSPLASH:birthday balloons"
    assert [n.id for n in projects.list_nodes(project.id, "user-1", store=store)] == [n.id for n in nodes]


def test_create_project_rolls_back_when_nodes_fail(flow_payload) -> None:
    store = _NodeInsertFails()
    with pytest.raises(StoreFailureError):
        projects.create_project("user-1", validate_flow(flow_payload(4)), store=store)
    assert store.select("projects") == []
    assert store.select("nodes") == []


def test_other_users_cannot_see_or_touch_a_project(store, make_project) -> None:
    project, nodes = make_project()
    with pytest.raises(ProjectNotFoundError):
        projects.get_project(project.id, "intruder", store=store)
    with pytest.raises(ProjectNotFoundError):
        projects.update_theme(project.id, "intruder", "elegant-dark", store=store)
    with pytest.raises(ProjectNotFoundError):
        projects.delete_project(project.id, "intruder", store=store)
    with pytest.raises(ProjectNotFoundError):
        projects.update_node_content(project.id, nodes[1].id, "intruder", {"question": "Hi?"}, store=store)
    assert projects.list_projects("intruder", store=store) == []


def test_update_project_and_theme(store, make_project) -> None:
    project, _ = make_project()
    updated = projects.update_project(project.id, "user-1", title="  New title ", description="", store=store)
    assert updated.title == "New title"
    assert updated.description is None

    themed = projects.update_theme(project.id, "user-1", "minimal-zen", store=store)
    assert themed.theme == "minimal-zen"
    with pytest.raises(InvalidInputError):
        projects.update_theme(project.id, "user-1", "vaporwave", store=store)


def test_publish_assigns_slug_and_unpublish_clears_it(store, make_project) -> None:
    project, nodes = make_project()
    published = projects.publish_project(project.id, "user-1", store=store)
    assert published.published is True
    assert published.share_slug and len(published.share_slug) >= 16

    again = projects.publish_project(project.id, "user-1", store=store)
    assert again.share_slug == published.share_slug

    public, public_nodes = projects.get_published_flow(published.share_slug, store=store)
    assert public.id == project.id
    assert [n.id for n in public_nodes] == [n.id for n in nodes]

    unpublished = projects.unpublish_project(project.id, "user-1", store=store)
    assert unpublished.published is False
    assert unpublished.share_slug is None
    with pytest.raises(ProjectNotFoundError):
        projects.get_published_flow(published.share_slug, store=store)


def test_publish_regenerates_slug_on_collision(store, make_project, monkeypatch) -> None:
    first, _ = make_project()
    second, _ = make_project()
    slugs = iter(["taken-slug", "taken-slug", "fresh-slug"])
    monkeypatch.setattr(projects.secrets, "token_urlsafe", lambda n: next(slugs))

    assert projects.publish_project(first.id, "user-1", store=store).share_slug == "taken-slug"
    assert projects.publish_project(second.id, "user-1", store=store).share_slug == "fresh-slug"


def test_delete_project_cascades(store, make_project) -> None:
    project, _ = make_project()
    published = projects.publish_project(project.id, "user-1", store=store)
    store.insert("sessions", {"project_id": project.id})

    projects.delete_project(project.id, "user-1", store=store)
    assert store.select("nodes", where={"project_id": project.id}) == []
    assert store.select("sessions", where={"project_id": project.id}) == []
    with pytest.raises(ProjectNotFoundError):
        projects.get_published_flow(published.share_slug, store=store)


def test_update_node_content_validates_against_stored_type(store, make_project) -> None:
    project, nodes = make_project()
    text_node = nodes[1]
    updated = projects.update_node_content(
        project.id, text_node.id, "user-1", {"question": "What do you wish for?", "maxLength": 80}, store=store
    )
    assert updated.content == {"question": "What do you wish for?", "maxLength": 80}
    assert updated.order_index == text_node.order_index

    with pytest.raises(ContentValidationError):
        projects.update_node_content(project.id, text_node.id, "user-1", {"headline": "Not a question"}, store=store)
    with pytest.raises(NodeNotFoundError):
        projects.update_node_content(project.id, "missing", "user-1", {"question": "Q?"}, store=store)


def test_list_projects_is_newest_first(store, make_project) -> None:
    older, _ = make_project()
    newer, _ = make_project()
    store.update("projects", {"created_at": "2020-01-01T00:00:00+00:00"}, where={"id": older.id})
    assert [p.id for p in projects.list_projects("user-1", store=store)] == [newer.id, older.id]


def test_failed_reads_surface_as_store_failures(flow_payload) -> None:
    store = _ReadsFail()
    project, nodes = projects.create_project("user-1", validate_flow(flow_payload(4)), store=store)
    project = projects.publish_project(project.id, "user-1", store=store)

    store.failing = {"nodes"}
    with pytest.raises(StoreFailureError):
        projects.update_node_content(project.id, nodes[1].id, "user-1", {"question": "New?"}, store=store)
    with pytest.raises(StoreFailureError):
        projects.get_published_flow(project.share_slug, store=store)

    store.failing = {"projects"}
    with pytest.raises(StoreFailureError):
        projects.list_projects("user-1", store=store)
    with pytest.raises(StoreFailureError):
        projects.get_published_flow(project.share_slug, store=store)

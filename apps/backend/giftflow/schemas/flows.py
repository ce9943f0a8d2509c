from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Project(ApiModel):
    id: str
    owner_id: str
    title: str
    description: Optional[str] = None
    theme: str
    published: bool = False
    share_slug: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Node(ApiModel):
    id: str
    project_id: str
    type: str
    order_index: int
    content: dict[str, Any]
    updated_at: Optional[str] = None


class SessionAnswer(ApiModel):
    node_id: str
    answer: Union[str, list[str]]
    timestamp: str


class Session(ApiModel):
    id: str
    project_id: str
    answers: list[SessionAnswer] = Field(default_factory=list)
    completed: bool = False
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class Asset(ApiModel):
    id: str
    owner_id: str
    project_id: Optional[str] = None
    storage_ref: str
    file_name: str
    file_size: int
    mime_type: str
    width: Optional[int] = None
    height: Optional[int] = None
    alt_text: Optional[str] = None
    attribution: Optional[str] = None
    public_url: Optional[str] = None


# Requests / responses


class GenerateFlowRequest(ApiModel):
    prompt: str


class FlowResponse(ApiModel):
    project: Project
    nodes: list[Node]


class ProjectListResponse(ApiModel):
    projects: list[Project]


class ProjectUpdateRequest(ApiModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class ThemeUpdateRequest(ApiModel):
    theme: str


class NodeCreateRequest(ApiModel):
    type: str
    content: dict[str, Any]
    at_index: Optional[int] = None


class NodeContentUpdateRequest(ApiModel):
    content: dict[str, Any]


class NodeResponse(ApiModel):
    node: Node


class ReorderRequest(ApiModel):
    node_ids: list[str]


class OkResponse(ApiModel):
    ok: bool = True


class AnswerIn(ApiModel):
    node_id: str
    answer: Union[str, list[str]]


class SessionAnswersRequest(ApiModel):
    answers: list[AnswerIn] = Field(default_factory=list)
    completed: bool = False


class SessionResponse(ApiModel):
    session: Session


class AssetResponse(ApiModel):
    asset: Asset


class PublishedFlow(ApiModel):
    title: str
    description: Optional[str] = None
    theme: str
    share_slug: str
    nodes: list[Node]

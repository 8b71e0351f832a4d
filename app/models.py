from datetime import datetime, timezone
from enum import Enum
from math import ceil
from typing import Any

from pydantic import BaseModel, field_validator
from sqlalchemy import JSON, DateTime
from sqlmodel import Column, Field, Relationship, SQLModel


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class ActivityAction(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"


# Users


class UserBase(SQLModel):
    name: str = Field(min_length=1, max_length=120)
    email: str = Field(max_length=254, unique=True, index=True)


class User(UserBase, table=True):
    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class UserCreate(UserBase):
    pass


class UserRead(UserBase):
    id: int

    model_config = {"from_attributes": True}


# Projects


class ProjectBase(SQLModel):
    name: str = Field(min_length=1, max_length=200, index=True)
    description: str | None = Field(default=None)


class Project(ProjectBase, table=True):
    __tablename__ = "projects"

    id: int | None = Field(default=None, primary_key=True)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class ProjectCreate(ProjectBase):
    pass


class ProjectRead(ProjectBase):
    id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ProjectFilter(SQLModel):
    name: str | None = None


# Tags


class TagBase(SQLModel):
    name: str = Field(min_length=1, max_length=50, unique=True, index=True)


class Tag(TagBase, table=True):
    __tablename__ = "tags"

    id: int | None = Field(default=None, primary_key=True)


class TagCreate(TagBase):
    pass


class TagRead(TagBase):
    id: int

    model_config = {"from_attributes": True}


class TaskTagLink(SQLModel, table=True):
    __tablename__ = "task_tags"

    task_id: int | None = Field(
        default=None, foreign_key="tasks.id", primary_key=True, ondelete="CASCADE"
    )
    tag_id: int | None = Field(
        default=None, foreign_key="tags.id", primary_key=True, ondelete="CASCADE"
    )


# Tasks


class TaskBase(SQLModel):
    """Base model with shared fields"""

    title: str = Field(min_length=1, max_length=200, index=True)
    description: str | None = Field(default=None)
    status: TaskStatus = Field(default=TaskStatus.TODO, index=True)
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, index=True)
    due_date: datetime | None = None


class Task(TaskBase, table=True):
    """Database model"""

    __tablename__ = "tasks"

    id: int | None = Field(default=None, primary_key=True)
    due_date: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True, index=True)
    )
    project_id: int = Field(foreign_key="projects.id", index=True)
    assignee_id: int | None = Field(
        default=None, foreign_key="users.id", index=True, ondelete="SET NULL"
    )
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    project: Project | None = Relationship()
    assignee: User | None = Relationship()
    tags: list[Tag] = Relationship(link_model=TaskTagLink)


class TaskCreate(TaskBase):
    """Schema for creating a task"""

    project_id: int
    assignee_id: int | None = None
    tag_ids: list[int] | None = None


class TaskUpdate(SQLModel):
    """Schema for updating a task - all fields optional; null clears only nullable fields"""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    assignee_id: int | None = None
    tag_ids: list[int] | None = None

    @field_validator("title", "status", "priority")
    @classmethod
    def reject_null(cls, value):
        # omit the field to leave it unchanged; these columns are NOT NULL
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class TaskRead(TaskBase):
    """Schema for task responses, relations embedded"""

    id: int
    project_id: int
    assignee_id: int | None = None
    created_at: datetime
    updated_at: datetime | None = None
    project: ProjectRead | None = None
    assignee: UserRead | None = None
    tags: list[TagRead] = []

    model_config = {"from_attributes": True}


class TaskFilter(SQLModel):
    """Filter for task listings; also the input of list cache keys."""

    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assignee_id: int | None = None
    project_id: int | None = None
    due_date_from: datetime | None = None
    due_date_to: datetime | None = None


# Activity history


class FieldChange(BaseModel):
    old: Any = None
    new: Any = None


ChangeMap = dict[str, FieldChange]


class TaskActivity(SQLModel, table=True):
    """
    Append-only audit record.

    task_id is the live reference and is nulled when the task is deleted;
    task_ref keeps the id the record was written for.
    """

    __tablename__ = "task_activities"

    id: int | None = Field(default=None, primary_key=True)
    task_id: int | None = Field(
        default=None, foreign_key="tasks.id", index=True, ondelete="SET NULL"
    )
    task_ref: int = Field(index=True)
    user_id: int | None = Field(default=None, foreign_key="users.id", index=True)
    action: ActivityAction = Field(index=True)
    changes: dict | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )


DELETED_TASK_TITLE = "[Deleted Task]"


class ActivityRead(SQLModel):
    id: int
    task_id: int | None
    task_title: str
    user_id: int | None
    user_name: str | None = None
    action: ActivityAction
    changes: dict[str, FieldChange] | None = None
    created_at: datetime


class ActivityFilter(SQLModel):
    user_id: int | None = None
    task_id: int | None = None
    action: ActivityAction | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=20, ge=1, le=100)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.per_page


class PageMeta(SQLModel):
    total: int
    page: int
    per_page: int
    total_pages: int

    @classmethod
    def build(cls, total: int, page: int, per_page: int) -> "PageMeta":
        return cls(
            total=total, page=page, per_page=per_page, total_pages=ceil(total / per_page)
        )


class ActivityPage(SQLModel):
    data: list[ActivityRead]
    meta: PageMeta

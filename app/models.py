from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


class Task(SQLModel, table=True):
    """Database model"""

    __tablename__ = "tasks"
    # SQLite would otherwise reuse the id of the most recently deleted row
    __table_args__ = {"sqlite_autoincrement": True}

    id: int | None = Field(default=None, primary_key=True)
    title: str = Field(max_length=200)
    description: str | None = Field(default=None)
    completed: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )


class TaskCreate(SQLModel):
    """
    Schema for creating a task.

    title is optional here so that a missing title is rejected by the
    service with the same error as a blank one.
    """

    title: str | None = Field(default=None, max_length=200)
    description: str | None = None


class TaskUpdate(SQLModel):
    """Schema for replacing a task (PUT)"""

    title: str | None = Field(default=None, max_length=200)
    description: str | None = None
    completed: bool | None = None


class TaskResponse(SQLModel):
    """Schema for task responses and cached list entries"""

    id: int
    title: str
    description: str | None = None
    completed: bool
    created_at: datetime

    model_config = {"from_attributes": True}

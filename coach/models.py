from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_validator, model_validator
from sqlalchemy import Column, DateTime, Text, UniqueConstraint
from sqlmodel import SQLModel, Field


def utc_naive(value: datetime) -> datetime:
    """Normalize a datetime to naive UTC, the form every stored timestamp uses.

    Naive input is taken to already be UTC. Tables declare plain ``DateTime``
    columns so naive values bind as-is on every backend.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def utcnow() -> datetime:
    return utc_naive(datetime.now(timezone.utc))


class Coach(str, Enum):
    LOGIC = "logic"
    ORANGE = "orange"


class Scene(str, Enum):
    GOAL = "goal"
    EMOTION = "emotion"
    CHAT = "chat"

    @classmethod
    def resolve(cls, value: Optional[str]) -> "Scene":
        # anything that is not a known scene is treated as free chat
        try:
            return cls(value)
        except ValueError:
            return cls.CHAT

    @property
    def coach(self) -> Coach:
        if self is Scene.GOAL:
            return Coach.LOGIC
        return Coach.ORANGE


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True, max_length=50)
    username: str = Field(default="", max_length=100)
    email: str = Field(default="", max_length=100)
    energy: int = Field(default=20)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))


class EmotionRecord(SQLModel, table=True):
    __tablename__ = "emotion_records"

    id: str = Field(primary_key=True, max_length=50)
    user_id: str = Field(index=True, max_length=50)
    emotion_type: str = Field(default="", max_length=50)
    intensity: int = 0 # 1 negative | 2 neutral | 3 positive
    trigger: str = Field(default="", sa_column=Column(Text))
    unhealthy_beliefs: str = Field(default="", sa_column=Column(Text))
    healthy_emotion: str = Field(default="", max_length=50)
    coping_strategies: str = Field(default="", sa_column=Column(Text))
    status: int = 0 # 0 active | 1 deleted
    record_date: datetime = Field(sa_column=Column(DateTime, nullable=False))


class ReviewAnalysis(SQLModel, table=True):
    __tablename__ = "review_analyses"
    __table_args__ = (
        UniqueConstraint("user_id", "period", "start_date", "end_date", name="idx_user_period_date"),
    )

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    user_id: str = Field(max_length=50)
    period: str = Field(max_length=20) # day | week | month
    start_date: datetime = Field(sa_column=Column(DateTime, nullable=False))
    end_date: datetime = Field(sa_column=Column(DateTime, nullable=False))
    summary: str = Field(default="", sa_column=Column(Text))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "period": self.period,
            "startDate": self.start_date.isoformat() + "Z",
            "endDate": self.end_date.isoformat() + "Z",
            "summary": self.summary,
            "createdAt": self.created_at.isoformat() + "Z",
        }


class ChatRequest(BaseModel):
    message: str = PydanticField(min_length=1)
    scene: Optional[str] = None
    # clients still send this, but the scene alone picks the coach
    coach_type: Optional[str] = None

    @property
    def resolved_scene(self) -> Scene:
        return Scene.resolve(self.scene)


class TimeRecordEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = PydanticField(alias="taskId")
    title: str = ""
    total_time: int = PydanticField(default=0, alias="totalTime") # seconds


class ReviewWindow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    period: Literal["day", "week", "month"]
    start_date: datetime = PydanticField(alias="startDate")
    end_date: datetime = PydanticField(alias="endDate")

    @field_validator("start_date", "end_date")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return utc_naive(value)

    @model_validator(mode="after")
    def _check_range(self) -> "ReviewWindow":
        if self.start_date > self.end_date:
            raise ValueError("start date must be before end date")
        return self


class ReviewAnalysisRequest(ReviewWindow):
    time_records: List[TimeRecordEntry] = PydanticField(default_factory=list, alias="timeRecords")

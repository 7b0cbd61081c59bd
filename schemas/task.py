# schemas/task.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date, datetime, timezone
from enum import Enum, IntEnum
from typing import List, Literal, Optional
from uuid import UUID


class TaskStatus(str, Enum):
    """タスクの状態（TODO -> DONE の一方向のみ）"""
    TODO = "todo"
    DONE = "done"


class Priority(IntEnum):
    """優先度（値が小さいほど高い）"""
    HIGH = 1
    MIDHIGH = 2
    MID = 3
    MIDLOW = 4
    LOW = 5

    @property
    def label(self) -> str:
        return {
            Priority.HIGH: "High",
            Priority.MIDHIGH: "Mid-High",
            Priority.MID: "Medium",
            Priority.MIDLOW: "Mid-Low",
            Priority.LOW: "Low",
        }[self]


class TaskSortField(str, Enum):
    CREATED_AT = "created_at"
    TITLE = "title"
    PRIORITY = "priority"
    DUE_DATE = "due_date"
    STATUS = "status"
    COMPLETED_AT = "completed_at"


def to_naive_utc(dt: datetime | None):
    """
    aware / naive を問わず UTC naive に揃える
    """
    if dt is None:
        return None
    if dt.tzinfo is not None and dt.utcoffset() is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


# -------------------------
# records
# -------------------------
class TaskRecord(BaseModel):
    """ストアから返るタスクのスナップショット（変更不可）"""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    task_id: UUID
    user_id: UUID
    parent_id: Optional[UUID] = None
    title: str
    description: str = ""
    status: TaskStatus
    priority: Priority
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# -------------------------
# input
# -------------------------
class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    priority: Priority = Priority.LOW
    parent_id: Optional[UUID] = None
    due_date: Optional[date] = None


class TaskUpdate(BaseModel):
    """
    部分更新用
    送られてきたフィールドだけが反映される（exclude_unset）
    """
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    parent_id: Optional[UUID] = None
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None

    @field_validator("completed_at")
    @classmethod
    def _completed_at_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    def to_patch(self) -> dict:
        return self.model_dump(exclude_unset=True)


# -------------------------
# list query
# -------------------------
class TaskFilters(BaseModel):
    priority: Optional[Priority] = None
    status: Optional[TaskStatus] = None
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    due_date: Optional[date] = None
    completed_at: Optional[date] = None


class SortTerm(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: TaskSortField
    direction: Literal["asc", "desc"] = "asc"


class TaskSort(BaseModel):
    terms: List[SortTerm] = Field(default_factory=list)

    @classmethod
    def parse(cls, raw: Optional[str]) -> "TaskSort":
        """
        "title:asc,priority:desc" 形式をパースする
        知らないフィールドは黙って捨てる / 不正な方向は asc 扱い
        """
        if not raw:
            return cls()

        allowed = {f.value for f in TaskSortField}
        terms: List[SortTerm] = []
        for part in raw.split(","):
            field, _, direction = part.strip().partition(":")
            field = field.strip()
            if field not in allowed:
                continue
            direction = direction.strip().lower()
            if direction not in ("asc", "desc"):
                direction = "asc"
            terms.append(SortTerm(field=TaskSortField(field), direction=direction))

        return cls(terms=terms)

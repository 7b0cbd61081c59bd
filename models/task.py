from sqlalchemy import Column, String, Text, Integer, Date, DateTime, ForeignKey, Uuid
from db.database import Base
from schemas.task import TaskStatus, Priority
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    # DB には UTC naive で保存する
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Task(Base):
    __tablename__ = "tasks"

    task_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    # 親タスクが削除されたらサブタスクはルートに戻す
    parent_id = Column(Uuid, ForeignKey("tasks.task_id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String(16), nullable=False, default=TaskStatus.TODO.value)  # todo / done
    priority = Column(Integer, nullable=False, default=Priority.LOW.value)  # 1(高)〜5(低)
    due_date = Column(Date)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Task {self.task_id}: {self.title} ({self.status})>"

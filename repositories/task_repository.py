# repositories/task_repository.py
import logging
import time
from datetime import datetime, time as dt_time, timedelta
from enum import Enum
from typing import Callable, List, Optional, TypeVar
from uuid import UUID

from sqlalchemy import select, update, delete, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from models.task import Task, utcnow
from schemas.task import TaskFilters, TaskRecord, TaskSort, TaskStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

# リトライ間の待ち時間（秒）。試行回数に比例して伸ばす
RETRY_BACKOFF_SEC = 0.05

_SORT_COLUMNS = {
    "created_at": Task.created_at,
    "title": Task.title,
    "priority": Task.priority,
    "due_date": Task.due_date,
    "status": Task.status,
    "completed_at": Task.completed_at,
}


def _column_values(fields: dict) -> dict:
    # Enum はそのままだとドライバによって扱いが違うので値に落とす
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in fields.items()}


class TaskRepository:
    """
    tasks テーブルへのアクセス
    検証は一切しない（CRUD とロックだけ）
    書き込みは flush までで、commit は with_transaction が行う
    """

    def __init__(self, db: Session, lock_timeout_ms: Optional[int] = None):
        self.db = db
        self.lock_timeout_ms = lock_timeout_ms

    # -------------------------
    # transaction
    # -------------------------
    def with_transaction(self, fn: Callable[[], T], attempts: int = 1) -> T:
        """
        fn を1つのトランザクションで実行して commit する
        例外なら rollback して再送出。OperationalError（デッドロック / ロック待ち
        タイムアウト等）だけは attempts 回まで fn ごとやり直す
        """
        attempt = 1
        while True:
            try:
                result = fn()
                self.db.commit()
                return result
            except OperationalError as e:
                self.db.rollback()
                if attempt >= attempts:
                    logger.error("Transaction failed after %d attempt(s): %s", attempt, e.orig)
                    raise
                logger.warning("Transaction attempt %d/%d failed, retrying: %s", attempt, attempts, e.orig)
                time.sleep(RETRY_BACKOFF_SEC * attempt)
                attempt += 1
            except Exception:
                self.db.rollback()
                raise

    # -------------------------
    # read
    # -------------------------
    def _query_for_user(self, user_id: UUID):
        return select(Task).where(Task.user_id == user_id)

    def _get_row(self, user_id: UUID, task_id: UUID) -> Optional[Task]:
        stmt = self._query_for_user(user_id).where(Task.task_id == task_id)
        return self.db.scalars(stmt).first()

    def query(
        self,
        user_id: UUID,
        filters: Optional[TaskFilters] = None,
        sort: Optional[TaskSort] = None,
    ) -> List[TaskRecord]:
        stmt = self._query_for_user(user_id)
        stmt = self._apply_filters(stmt, filters)
        stmt = self._apply_sorting(stmt, sort)
        return [TaskRecord.model_validate(row) for row in self.db.scalars(stmt).all()]

    def _apply_filters(self, stmt, filters: Optional[TaskFilters]):
        if filters is None:
            return stmt

        if filters.priority is not None:
            stmt = stmt.where(Task.priority == filters.priority.value)
        if filters.status is not None:
            stmt = stmt.where(Task.status == filters.status.value)
        if filters.title:
            stmt = stmt.where(Task.title.icontains(filters.title, autoescape=True))
        if filters.description:
            stmt = stmt.where(Task.description.icontains(filters.description, autoescape=True))
        if filters.due_date is not None:
            stmt = stmt.where(Task.due_date == filters.due_date)
        if filters.completed_at is not None:
            # 日付単位の一致（その日の 00:00 以上、翌日 00:00 未満）
            start = datetime.combine(filters.completed_at, dt_time.min)
            stmt = stmt.where(
                Task.completed_at >= start,
                Task.completed_at < start + timedelta(days=1),
            )
        return stmt

    def _apply_sorting(self, stmt, sort: Optional[TaskSort]):
        if sort is None:
            return stmt
        for term in sort.terms:
            column = _SORT_COLUMNS[term.field.value]
            stmt = stmt.order_by(column.desc() if term.direction == "desc" else column.asc())
        return stmt

    def get(self, user_id: UUID, task_id: UUID) -> Optional[TaskRecord]:
        row = self._get_row(user_id, task_id)
        return TaskRecord.model_validate(row) if row is not None else None

    def get_for_update(self, user_id: UUID, task_id: UUID) -> Optional[TaskRecord]:
        """
        行ロック付きで取得する（トランザクション内で呼ぶこと）
        """
        if self.lock_timeout_ms and self.db.get_bind().dialect.name == "postgresql":
            self.db.execute(text(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}"))

        stmt = (
            self._query_for_user(user_id)
            .where(Task.task_id == task_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = self.db.scalars(stmt).first()
        return TaskRecord.model_validate(row) if row is not None else None

    def has_incomplete_direct_subtasks(self, user_id: UUID, parent_id: UUID) -> bool:
        stmt = (
            select(Task.task_id)
            .where(
                Task.user_id == user_id,
                Task.parent_id == parent_id,
                Task.status != TaskStatus.DONE.value,
            )
            .limit(1)
        )
        return self.db.scalars(stmt).first() is not None

    # -------------------------
    # write
    # -------------------------
    def insert(self, user_id: UUID, fields: dict) -> TaskRecord:
        now = utcnow()
        row = Task(
            user_id=user_id,
            created_at=now,
            updated_at=now,
            **_column_values(fields),
        )
        self.db.add(row)
        self.db.flush()
        return TaskRecord.model_validate(row)

    def apply_partial_update(self, task_id: UUID, fields: dict) -> TaskRecord:
        row = self.db.get(Task, task_id)
        for key, value in _column_values(fields).items():
            setattr(row, key, value)
        row.updated_at = utcnow()
        self.db.flush()
        return TaskRecord.model_validate(row)

    def mark_completed(self, task_id: UUID, completed_at: datetime) -> Optional[TaskRecord]:
        """
        status が todo の場合だけ done に更新する
        他のトランザクションが先に完了させていたら None
        """
        result = self.db.execute(
            update(Task)
            .where(Task.task_id == task_id, Task.status == TaskStatus.TODO.value)
            .values(
                status=TaskStatus.DONE.value,
                completed_at=completed_at,
                updated_at=completed_at,
            )
        )
        if result.rowcount != 1:
            return None

        row = self.db.scalars(
            select(Task)
            .where(Task.task_id == task_id)
            .execution_options(populate_existing=True)
        ).one()
        return TaskRecord.model_validate(row)

    def delete(self, task_id: UUID) -> None:
        # サブタスクはルートに戻してから削除（FK の ON DELETE SET NULL と同じ挙動）
        self.db.execute(
            update(Task)
            .where(Task.parent_id == task_id)
            .values(parent_id=None, updated_at=utcnow())
        )
        self.db.execute(delete(Task).where(Task.task_id == task_id))

# services/task_service.py
import logging
from datetime import datetime
from typing import Callable, List, Optional
from uuid import UUID

from models.task import utcnow
from repositories.task_repository import TaskRepository
from schemas.task import (
    Priority,
    TaskCreate,
    TaskFilters,
    TaskRecord,
    TaskSort,
    TaskStatus,
    TaskUpdate,
)
from services.exceptions import (
    AlreadyCompleted,
    CannotDeleteCompleted,
    IncompleteSubtasks,
    ParentCompleted,
    ParentNotFound,
    SelfParent,
    TaskNotFound,
    TaskOperationError,
    TaskValidationError,
)

logger = logging.getLogger(__name__)

# null を送られても無視するフィールド
_NON_NULLABLE_FIELDS = ("title", "status", "priority")


class TaskService:
    """
    タスクの作成 / 更新 / 削除 / 完了のルールをまとめたもの

    - user_id は必ず引数で受け取る（認証状態を直接読まない）
    - 読む -> 検証 -> パッチを作る -> 書く の順
    - 失敗したら何も書き込まない（with_transaction で rollback）
    """

    def __init__(
        self,
        repository: TaskRepository,
        clock: Callable[[], datetime] = utcnow,
        complete_attempts: int = 5,
    ):
        self.repository = repository
        self.clock = clock
        self.complete_attempts = complete_attempts

    # -------------------------
    # read
    # -------------------------
    def list_tasks(
        self,
        user_id: UUID,
        filters: Optional[TaskFilters] = None,
        sort: Optional[TaskSort] = None,
    ) -> List[TaskRecord]:
        return self.repository.query(user_id, filters, sort)

    def get_task(self, user_id: UUID, task_id: UUID) -> TaskRecord:
        task = self.repository.get(user_id, task_id)
        if task is None:
            raise TaskNotFound()
        return task

    # -------------------------
    # create
    # -------------------------
    def create_task(self, user_id: UUID, data: TaskCreate) -> TaskRecord:
        if not data.title.strip():
            raise TaskValidationError("The title field is required.")
        if data.due_date is not None and data.due_date < self.clock().date():
            raise TaskValidationError("The due date must be a date after or equal to today.")

        def _create() -> TaskRecord:
            if data.parent_id is not None:
                self._check_parent(user_id, data.parent_id)
            return self.repository.insert(
                user_id,
                {
                    "parent_id": data.parent_id,
                    "title": data.title,
                    "description": data.description or "",
                    "status": TaskStatus.TODO,
                    "priority": data.priority or Priority.LOW,
                    "due_date": data.due_date,
                    "completed_at": None,
                },
            )

        task = self.repository.with_transaction(_create)
        logger.info("Task created: task_id=%s user_id=%s parent_id=%s", task.task_id, user_id, task.parent_id)
        return task

    # -------------------------
    # update
    # -------------------------
    def update_task(self, user_id: UUID, task_id: UUID, data: TaskUpdate) -> TaskRecord:
        """
        部分更新
        status=done への直接更新は許可するが completed_at は付けない
        （completed_at を付けるのは complete_task だけ）
        """
        patch = self._build_patch(data)

        def _update() -> TaskRecord:
            task = self.repository.get(user_id, task_id)
            if task is None:
                raise TaskNotFound()

            target_status = patch.get("status")

            # 1. done にするならサブタスクが全部 done であること
            if target_status == TaskStatus.DONE and task.status != TaskStatus.DONE:
                if self.repository.has_incomplete_direct_subtasks(user_id, task.task_id):
                    raise IncompleteSubtasks()

            if target_status == TaskStatus.TODO and task.status == TaskStatus.DONE:
                raise TaskValidationError("Completed tasks cannot be reopened.")

            # 2. 親の付け替え
            if "parent_id" in patch and patch["parent_id"] != task.parent_id and patch["parent_id"] is not None:
                self._check_parent(user_id, patch["parent_id"], task_id=task.task_id)

            if not patch:
                return task
            return self.repository.apply_partial_update(task.task_id, patch)

        try:
            return self.repository.with_transaction(_update)
        except TaskOperationError as e:
            logger.info("Task update rejected: task_id=%s code=%s", task_id, e.code)
            raise

    def _build_patch(self, data: TaskUpdate) -> dict:
        patch = data.to_patch()

        for key in _NON_NULLABLE_FIELDS:
            if key in patch and patch[key] is None:
                del patch[key]

        if "description" in patch and patch["description"] is None:
            patch["description"] = ""

        if "title" in patch and not patch["title"].strip():
            raise TaskValidationError("The title field is required.")

        completed_at = patch.get("completed_at")
        if completed_at is not None and completed_at > self.clock():
            raise TaskValidationError("The completed at must be a date before or equal to now.")

        return patch

    # -------------------------
    # delete
    # -------------------------
    def delete_task(self, user_id: UUID, task_id: UUID) -> None:
        def _delete() -> None:
            task = self.repository.get(user_id, task_id)
            if task is None:
                raise TaskNotFound()
            if task.status == TaskStatus.DONE:
                raise CannotDeleteCompleted()
            self.repository.delete(task.task_id)

        self.repository.with_transaction(_delete)
        logger.info("Task deleted: task_id=%s user_id=%s", task_id, user_id)

    # -------------------------
    # complete
    # -------------------------
    def complete_task(self, user_id: UUID, task_id: UUID) -> TaskRecord:
        """
        行ロックを取った状態で完了にする
        同じタスクを同時に完了させた場合は片方だけ成功し、もう片方は AlreadyCompleted
        """

        def _complete() -> TaskRecord:
            task = self.repository.get_for_update(user_id, task_id)
            if task is None:
                raise TaskNotFound()
            if task.status == TaskStatus.DONE:
                raise AlreadyCompleted()
            if self.repository.has_incomplete_direct_subtasks(user_id, task.task_id):
                raise IncompleteSubtasks()

            completed = self.repository.mark_completed(task.task_id, self.clock())
            if completed is None:
                raise AlreadyCompleted()
            return completed

        try:
            task = self.repository.with_transaction(_complete, attempts=self.complete_attempts)
        except TaskOperationError as e:
            logger.info("Task completion rejected: task_id=%s code=%s", task_id, e.code)
            raise

        logger.info("Task completed: task_id=%s user_id=%s completed_at=%s", task.task_id, user_id, task.completed_at)
        return task

    # -------------------------
    # helpers
    # -------------------------
    def _check_parent(self, user_id: UUID, parent_id: UUID, task_id: Optional[UUID] = None) -> None:
        if task_id is not None and parent_id == task_id:
            raise SelfParent()

        parent = self.repository.get(user_id, parent_id)
        if parent is None:
            raise ParentNotFound()
        if parent.status == TaskStatus.DONE:
            raise ParentCompleted()

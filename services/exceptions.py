# services/exceptions.py
"""
タスク操作の業務エラー

どれも想定内の結果なので、呼び出し側（ルーター）でレスポンスに変換する。
DB 接続断やロックタイムアウトなどのストア由来の例外はここには含めない。
"""


class TaskOperationError(Exception):
    code = "task_operation_failed"
    default_message = "Task operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class TaskNotFound(TaskOperationError):
    code = "not_found"
    default_message = "Task not found"


class TaskValidationError(TaskOperationError):
    code = "validation_failed"
    default_message = "The given data was invalid"


class ParentNotFound(TaskOperationError):
    code = "parent_not_found"
    default_message = "Parent task not found"


class ParentCompleted(TaskOperationError):
    code = "parent_completed"
    default_message = "Cannot attach a task to a completed parent task"


class SelfParent(TaskOperationError):
    code = "self_parent"
    default_message = "A task cannot be its own parent"


class IncompleteSubtasks(TaskOperationError):
    code = "incomplete_subtasks"
    default_message = "Cannot complete task with incomplete subtasks"


class AlreadyCompleted(TaskOperationError):
    code = "already_completed"
    default_message = "Task is already completed"


class CannotDeleteCompleted(TaskOperationError):
    code = "cannot_delete_completed"
    default_message = "Cannot delete completed tasks"

"""Scoped cleanup list used for deterministic replica teardown."""

from typing import Any, Callable, List

from common.logging_config import get_logger
from common.signal import Connection, Signal

logger = get_logger(__name__)


class CleanupScope:
    """
    Ordered list of cleanup tasks, run exactly once on dispose().

    A task may be a plain callable, or any object exposing ``destroy()`` or
    ``disconnect()`` (replicas, signals, connections). Tasks run in the order
    they were added. Tasks added while disposing still run in the same pass;
    tasks added after disposal run immediately.
    """

    def __init__(self):
        self._tasks: List[Any] = []
        self.disposing = False
        self.disposed = False

    def add(self, task: Any) -> Any:
        """
        Add a task to the scope.

        Args:
            task: Callable or object with destroy()/disconnect()

        Returns:
            The task, for chaining
        """
        if self.disposed:
            logger.debug(f"Cleanup scope already disposed, running task immediately: {task!r}")
            self._run(task)
            return task

        self._tasks.append(task)
        return task

    def connect(self, signal: Signal, callback: Callable[..., Any]) -> Connection:
        """Connect to a signal and disconnect automatically on dispose."""
        return self.add(signal.connect(callback))

    def remove(self, task: Any) -> bool:
        """
        Remove a task without running it.

        Returns:
            True if the task was present
        """
        for position, existing in enumerate(self._tasks):
            if existing is task:
                del self._tasks[position]
                return True
        return False

    def dispose(self) -> None:
        """Run every task once, in insertion order. Later calls are no-ops."""
        if self.disposing or self.disposed:
            return

        self.disposing = True
        while self._tasks:
            task = self._tasks.pop(0)
            try:
                self._run(task)
            except Exception as e:
                logger.error(f"Cleanup task {task!r} failed: {e}", exc_info=True)
        self.disposing = False
        self.disposed = True

    def _run(self, task: Any) -> None:
        if hasattr(task, "destroy"):
            task.destroy()
        elif hasattr(task, "disconnect"):
            task.disconnect()
        elif callable(task):
            task()
        else:
            logger.warning(f"Unsupported cleanup task type: {type(task).__name__}")

    def __len__(self) -> int:
        return len(self._tasks)

"""
Task graph store.

Holds the task DAG of every request. Tasks are created pending, started once
all of their dependencies are completed, and finish completed or failed. A
failed task's dependents stay pending; ``get_blocked_tasks`` reports them.

Listeners registered with ``add_listener`` are called after every committed
status change, outside the store lock.
"""

import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set

from autonomy.core.errors import CyclicDependency, InvalidTransition
from autonomy.models.task import Task, TaskSpec, TaskStatus

logger = logging.getLogger(__name__)

TaskListener = Callable[[Task], None]


class TaskGraphStore:
    """
    Thread-safe store for dependency-ordered tasks.

    Tasks are partitioned by ``request_id`` and optionally by ``session_id``
    (the run that materialized them). Returned tasks are copies.

    Example:
        ```python
        store = TaskGraphStore()
        a = store.create_task("req-1", "collect sources", [])
        b = store.create_task("req-1", "summarize sources", [a.id])

        store.start_task(a.id)
        store.complete_task(a.id, "3 sources")
        ready = store.get_next_executable_tasks("req-1")  # [b]
        ```
    """

    def __init__(self):
        self._tasks: Dict[str, Task] = {}
        self._listeners: List[TaskListener] = []
        self._lock = threading.RLock()

    # ========================================================================
    # LISTENERS
    # ========================================================================

    def add_listener(self, listener: TaskListener):
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: TaskListener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, task: Task):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(task.model_copy(deep=True))
            except Exception as e:
                logger.error(f"Task listener failed for {task.id}: {e}", exc_info=True)

    # ========================================================================
    # CREATION
    # ========================================================================

    def create_task(
        self,
        request_id: str,
        description: str,
        dependencies: Optional[Iterable[str]] = None,
        task_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> Task:
        """
        Create a pending task.

        Args:
            request_id: Owning request
            description: What the task does
            dependencies: Ids of tasks that must complete first
            task_id: Explicit id (generated when omitted)
            session_id: Run that created the task

        Returns:
            Copy of the created task

        Raises:
            CyclicDependency: The task depends on itself or closes a cycle
            ValueError: ``task_id`` already exists
        """
        spec = TaskSpec(description=description, dependencies=list(dependencies or []), task_id=task_id)
        return self.create_tasks(request_id, [spec], session_id=session_id)[0]

    def create_tasks(
        self,
        request_id: str,
        specs: Sequence[TaskSpec],
        session_id: Optional[str] = None
    ) -> List[Task]:
        """
        Create several tasks atomically.

        Tasks in the batch may reference each other in any order. The cycle
        check runs over the existing graph plus the whole batch, and nothing
        is inserted unless every task passes.

        Raises:
            CyclicDependency: Some task would close a cycle
            ValueError: Duplicate task id
        """
        with self._lock:
            staged: Dict[str, Task] = {}
            for spec in specs:
                task_id = spec.task_id or str(uuid.uuid4())
                if task_id in self._tasks or task_id in staged:
                    raise ValueError(f"Task id already exists: {task_id}")

                dependencies = set(spec.dependencies)
                if task_id in dependencies:
                    raise CyclicDependency(task_id, [task_id, task_id])

                staged[task_id] = Task(
                    id=task_id,
                    request_id=request_id,
                    session_id=session_id,
                    description=spec.description,
                    dependencies=dependencies,
                )

            for task in staged.values():
                path = self._find_path(task.dependencies, task.id, staged)
                if path is not None:
                    raise CyclicDependency(task.id, [task.id] + path)

            for task in staged.values():
                unknown = [d for d in task.dependencies if d not in self._tasks and d not in staged]
                if unknown:
                    logger.warning(f"Task {task.id} depends on unknown tasks: {unknown}")

            self._tasks.update(staged)
            logger.debug(f"Created {len(staged)} tasks for request {request_id}")
            return [t.model_copy(deep=True) for t in staged.values()]

    def _find_path(
        self,
        start_ids: Iterable[str],
        target_id: str,
        staged: Dict[str, Task]
    ) -> Optional[List[str]]:
        """Dependency path from any of ``start_ids`` to ``target_id``, if one exists."""
        stack = [(dep, [dep]) for dep in start_ids]
        visited: Set[str] = set()

        while stack:
            current, path = stack.pop()
            if current == target_id:
                return path
            if current in visited:
                continue
            visited.add(current)

            task = staged.get(current) or self._tasks.get(current)
            if task is None:
                continue
            for dep in task.dependencies:
                stack.append((dep, path + [dep]))

        return None

    # ========================================================================
    # STATUS CHANGES
    # ========================================================================

    def start_task(self, task_id: str) -> Task:
        """
        Mark a pending task running.

        Raises:
            KeyError: Unknown task
            InvalidTransition: Task is not pending or a dependency is not completed
        """
        with self._lock:
            task = self._require(task_id)
            if task.status != TaskStatus.PENDING:
                raise InvalidTransition(task_id, task.status.value, TaskStatus.RUNNING.value)
            if not self._dependencies_completed(task):
                raise InvalidTransition(task_id, "pending (dependencies incomplete)", TaskStatus.RUNNING.value)

            task.status = TaskStatus.RUNNING
            task.started_at = datetime.now()
            snapshot = task.model_copy(deep=True)

        self._notify(snapshot)
        return snapshot

    def complete_task(self, task_id: str, result: Any) -> Task:
        """Mark a running task completed with its result."""
        with self._lock:
            task = self._require(task_id)
            if task.status != TaskStatus.RUNNING:
                raise InvalidTransition(task_id, task.status.value, TaskStatus.COMPLETED.value)

            task.status = TaskStatus.COMPLETED
            task.result = result
            task.completed_at = datetime.now()
            snapshot = task.model_copy(deep=True)

        logger.debug(f"Task {task_id} completed")
        self._notify(snapshot)
        return snapshot

    def fail_task(self, task_id: str, error: str) -> Task:
        """Mark a running task failed. Its dependents are left pending."""
        with self._lock:
            task = self._require(task_id)
            if task.status != TaskStatus.RUNNING:
                raise InvalidTransition(task_id, task.status.value, TaskStatus.FAILED.value)

            task.status = TaskStatus.FAILED
            task.error = error
            task.completed_at = datetime.now()
            snapshot = task.model_copy(deep=True)

        logger.debug(f"Task {task_id} failed: {error}")
        self._notify(snapshot)
        return snapshot

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task else None

    def get_tasks(
        self,
        request_id: Optional[str] = None,
        session_id: Optional[str] = None,
        status: Optional[TaskStatus] = None
    ) -> List[Task]:
        """Tasks in creation order, filtered by partition and status."""
        with self._lock:
            return [
                t.model_copy(deep=True)
                for t in self._partition(request_id, session_id)
                if status is None or t.status == status
            ]

    def get_next_executable_tasks(
        self,
        request_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> List[Task]:
        """Pending tasks whose dependencies are all completed, in creation order."""
        with self._lock:
            return [
                t.model_copy(deep=True)
                for t in self._partition(request_id, session_id)
                if t.status == TaskStatus.PENDING and self._dependencies_completed(t)
            ]

    def are_all_tasks_completed(self, request_id: str, session_id: Optional[str] = None) -> bool:
        with self._lock:
            return all(
                t.status == TaskStatus.COMPLETED
                for t in self._partition(request_id, session_id)
            )

    def get_blocked_tasks(
        self,
        request_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> List[Task]:
        """
        Pending tasks that can never run because a dependency failed.

        Blocking is transitive: a task waiting on a blocked task is blocked
        too. Tasks waiting on unknown ids are not included.
        """
        with self._lock:
            pending = [
                t for t in self._partition(request_id, session_id)
                if t.status == TaskStatus.PENDING
            ]
            blocked: Set[str] = set()
            changed = True
            while changed:
                changed = False
                for task in pending:
                    if task.id in blocked:
                        continue
                    for dep_id in task.dependencies:
                        dep = self._tasks.get(dep_id)
                        if dep is None:
                            continue
                        if dep.status == TaskStatus.FAILED or dep_id in blocked:
                            blocked.add(task.id)
                            changed = True
                            break

            return [t.model_copy(deep=True) for t in pending if t.id in blocked]

    def _partition(self, request_id: Optional[str], session_id: Optional[str]) -> List[Task]:
        return [
            t for t in self._tasks.values()
            if (request_id is None or t.request_id == request_id)
            and (session_id is None or t.session_id == session_id)
        ]

    def _dependencies_completed(self, task: Task) -> bool:
        for dep_id in task.dependencies:
            dep = self._tasks.get(dep_id)
            if dep is None or dep.status != TaskStatus.COMPLETED:
                return False
        return True

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise KeyError(f"Unknown task: {task_id}")
        return task

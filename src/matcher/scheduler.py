"""
Durable delayed task queue backed by MongoDB.

`TaskQueue.schedule_after` stores a task with its earliest run time; a
`Worker` claims due tasks one at a time and dispatches them by name.
Delivery is at-least-once: a task claimed by a worker that dies is put back
in the queue once it is considered stale.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from shared.config import Settings, get_settings
from shared.database import Database

TaskHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class TaskQueue:
    """Schedules tasks for later execution."""

    def __init__(self, db: Database):
        self.db = db

    async def schedule_after(self, delay_ms: int, task: str, args: dict[str, Any]) -> str:
        """Queue `task` to run no earlier than `delay_ms` from now."""
        run_at = datetime.now(timezone.utc) + timedelta(milliseconds=delay_ms)
        task_id = await self.db.insert_task(task, args, run_at)
        logger.debug(f"Scheduled {task} in {delay_ms}ms ({task_id})")
        return task_id


class Worker:
    """Claims due tasks and runs their handlers."""

    def __init__(
        self,
        db: Database,
        handlers: dict[str, TaskHandler],
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.db = db
        self.handlers = handlers

    async def run_task(self, task: dict[str, Any]) -> bool:
        """Run one claimed task. Returns True on success."""
        name = task.get("task")
        handler = self.handlers.get(name)
        if handler is None:
            logger.error(f"No handler registered for task {name}")
            await self.db.fail_task(task["_id"], f"Unknown task: {name}")
            return False

        try:
            result = await handler(task.get("args") or {})
        except Exception as e:
            logger.exception(f"Task {name} ({task['_id']}) failed: {e}")
            await self.db.fail_task(task["_id"], str(e))
            return False

        await self.db.complete_task(task["_id"])
        logger.debug(f"Task {name} ({task['_id']}) finished: {result}")
        return True

    async def run_pending(self, max_tasks: Optional[int] = None) -> int:
        """Run due tasks until none are left. Returns the number processed."""
        processed = 0
        while max_tasks is None or processed < max_tasks:
            task = await self.db.claim_due_task()
            if task is None:
                break
            await self.run_task(task)
            processed += 1
        return processed

    async def run_daemon(self, interval_seconds: Optional[float] = None) -> None:
        """Poll the queue forever."""
        interval = interval_seconds or self.settings.worker_poll_interval_seconds
        logger.info(f"Worker started (poll interval: {interval}s)")

        while True:
            try:
                await self.db.requeue_stale_tasks(self.settings.worker_stale_task_seconds)
                processed = await self.run_pending()
            except Exception as e:
                logger.error(f"Worker loop error: {e}")
                processed = 0

            if not processed:
                await asyncio.sleep(interval)

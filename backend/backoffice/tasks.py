# Overview: Detached task queue for work that must not block or fail a request.

"""
Background task queue.

Work submitted here runs after the request's own transaction has committed,
on a worker thread with its own app context and therefore its own DB session.
Storage conflicts are retried (run_with_retry); any other failure is logged
and dropped. Callers never see a task's outcome.

TASKS_EAGER=True runs tasks inline at submit time (still in a separate app
context and session), which keeps tests deterministic.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor

from flask import Flask, current_app, has_app_context

from .extensions import db


class TaskQueue:
    """
    One queue object may serve several apps (tests build more than one);
    each task runs under the app that was current when it was submitted.
    """

    def __init__(self, app: Flask | None = None):
        self._app: Flask | None = None
        self._executor: ThreadPoolExecutor | None = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self._app = app
        app.extensions["task_queue"] = self

    def _target_app(self) -> Flask:
        if has_app_context():
            return current_app._get_current_object()
        if self._app is None:
            raise RuntimeError("TaskQueue is not bound to an app")
        return self._app

    def _get_executor(self, app: Flask) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=app.config.get("TASK_WORKERS", 2),
                thread_name_prefix="backoffice-task",
            )
        return self._executor

    def submit(self, func, *args, **kwargs) -> Future | None:
        """Queue func(*args, **kwargs). Returns the Future, or None when run eagerly."""
        app = self._target_app()
        if app.config.get("TASKS_EAGER"):
            self._run(app, func, args, kwargs)
            return None
        return self._get_executor(app).submit(self._run, app, func, args, kwargs)

    def _run(self, app: Flask, func, args, kwargs) -> None:
        from .services.concurrency import run_with_retry

        name = getattr(func, "__name__", repr(func))
        attempts = app.config.get("TASK_RETRY_ATTEMPTS", 3)
        with app.app_context():
            try:
                run_with_retry(lambda: func(*args, **kwargs), attempts=attempts)
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Background task %s failed", name)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None


task_queue = TaskQueue()

import json
import logging
from types import SimpleNamespace

import pytest
import structlog

from app.core.celery_app import bind_task_logging_context, clear_task_logging_context
from app.core.logging import setup_logging


@pytest.fixture
def log_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    path = tmp_path / "logs" / "stackflow.log"

    setup_logging(log_file=str(path))
    yield path

    structlog.contextvars.clear_contextvars()
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    structlog.reset_defaults()


def read_events(path):
    for handler in logging.getLogger().handlers:
        handler.flush()
    return [json.loads(line) for line in path.read_text().splitlines()]


def test_structlog_and_stdlib_records_share_one_format(log_file):
    structlog.get_logger("stackflow.projects").info("Project created", project_id="p-1")
    logging.getLogger("celery.worker").warning("Lost worker %s", "w-1")

    ours, foreign = read_events(log_file)

    assert ours["event"] == "Project created"
    assert ours["project_id"] == "p-1"
    assert ours["level"] == "info"
    assert foreign["event"] == "Lost worker w-1"
    assert foreign["logger"] == "celery.worker"
    assert foreign["level"] == "warning"
    for event in (ours, foreign):
        assert event["app"] == "stackflow_crm"
        assert event["environment"] == "test"
        assert "timestamp" in event


def test_setup_is_idempotent(log_file):
    handlers = list(logging.getLogger().handlers)
    setup_logging(log_file=str(log_file))
    assert len(logging.getLogger().handlers) == len(handlers)


def test_celery_tasks_tag_their_events(log_file):
    logger = structlog.get_logger("stackflow.tasks")
    task = SimpleNamespace(name="app.tasks.cleanup_tasks.purge_trashed_projects")

    bind_task_logging_context(task_id="task-1", task=task)
    logger.info("Purged trashed projects", purged=2)
    clear_task_logging_context(task_id="task-1", task=task)
    logger.info("Worker idle")

    during, after = read_events(log_file)
    assert during["task_id"] == "task-1"
    assert during["task_name"] == task.name
    assert "task_id" not in after

import asyncio
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from screen_agent.config import load_endpoints, load_executor_settings, load_retry_config, load_timeout
from screen_agent.contracts.errors import ConfigurationError
from screen_agent.drivers.adb import AdbDriver
from screen_agent.executor.task_executor import TaskExecutor
from screen_agent.llm.model_client import ModelClient
from screen_agent.logging_setup import setup_logging
from screen_agent.logging_utils import generate_request_id, log_event
from screen_agent.utils.time_utils import iso_from_timestamp, now_iso_utc

setup_logging()
load_dotenv()


class TaskRequest(BaseModel):
    task: str = Field(min_length=1)


def build_default_executor() -> TaskExecutor:
    """Wire the adb driver and model client from environment configuration."""
    model_client = ModelClient(
        load_endpoints(),
        retry_config=load_retry_config(),
        timeout=load_timeout(),
    )
    return TaskExecutor(AdbDriver(), model_client, settings=load_executor_settings())


ExecutorFactory = Callable[[], TaskExecutor]

_executor_factory: ExecutorFactory = build_default_executor
_executor: Optional[TaskExecutor] = None
_background: Optional[asyncio.Task] = None
_started_at: Optional[str] = None


def set_executor_factory(factory: ExecutorFactory) -> None:
    """Replace how the executor is built (tests inject fakes); drops the current instance."""
    global _executor_factory, _executor, _background, _started_at
    _executor_factory = factory
    _executor = None
    _background = None
    _started_at = None


def get_executor() -> TaskExecutor:
    global _executor
    if _executor is None:
        try:
            _executor = _executor_factory()
        except ConfigurationError as exc:
            raise HTTPException(status_code=500, detail=f"configuration error: {exc}") from exc
    return _executor


def _status_payload(executor: TaskExecutor) -> dict:
    status = executor.execution_status
    result = executor.result
    return {
        "state": status.state.value,
        "message": status.message,
        "paused": executor.is_paused(),
        "task": executor.current_task,
        "step": executor.current_step,
        "history": executor.history_summary(),
        "result": result.model_dump() if result is not None else None,
        "started_at": _started_at,
    }


app = FastAPI()


@app.get("/")
async def read_root():
    return {"message": "screen agent running"}


@app.post("/api/tasks")
async def start_task(payload: TaskRequest):
    global _background, _started_at
    executor = get_executor()
    if executor.execution_status.is_running:
        raise HTTPException(status_code=409, detail="already running")

    request_id = generate_request_id()
    log_event("task_start", request_id, {"task": payload.task})
    _started_at = now_iso_utc()
    _background = executor.start(payload.task)
    # Let the task enter Running before reporting back.
    await asyncio.sleep(0)
    return {"request_id": request_id, "status": "started", "task": payload.task}


@app.post("/api/tasks/pause")
async def pause_task():
    executor = get_executor()
    executor.pause()
    return _status_payload(executor)


@app.post("/api/tasks/resume")
async def resume_task():
    executor = get_executor()
    executor.resume()
    return _status_payload(executor)


@app.post("/api/tasks/stop")
async def stop_task():
    executor = get_executor()
    executor.stop()
    return _status_payload(executor)


@app.get("/api/tasks/status")
async def task_status():
    return _status_payload(get_executor())


@app.get("/api/tasks/logs")
async def task_logs(limit: int = Query(default=100, ge=1, le=1000)):
    executor = get_executor()
    entries = executor.recent_logs(limit)
    return {
        "logs": [
            {
                "timestamp": iso_from_timestamp(entry.timestamp),
                "level": entry.level.value,
                "message": entry.message,
                "line": entry.format_line(),
            }
            for entry in entries
        ],
        "count": len(entries),
    }

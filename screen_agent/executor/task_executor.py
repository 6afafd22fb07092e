"""
Step-loop state machine: capture -> mark -> analyze -> execute -> repeat.

Idle -> Running -> {Completed | Cancelled | Error}; paused is an orthogonal flag.
One task runs per executor as a single asyncio.Task. Driver calls are synchronous
and dispatched with asyncio.to_thread; the model call is natively async.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from PIL import Image

from screen_agent.config import ExecutorSettings
from screen_agent.contracts.errors import ConfigurationError, is_fatal_error
from screen_agent.contracts.events import (
    ExecutionStatus,
    LogEntry,
    LogLevel,
    StatusUpdate,
    TaskCancelled,
    TaskFailed,
    TaskResult,
    TaskSuccess,
)
from screen_agent.executor.action_history import ActionHistory
from screen_agent.executor.actions_schema import (
    AIResponse,
    AskUser,
    Back,
    Done,
    Enter,
    Home,
    Input,
    Launch,
    LongPress,
    Swipe,
    Tap,
    TapMark,
    Wait,
    is_terminal,
)
from screen_agent.executor.driver import Driver, DriverResult
from screen_agent.llm.model_client import ModelClient
from screen_agent.llm.prompt import (
    ACTION_FAILED_TAG,
    LAUNCH_FAILED_TAG,
    PREVIOUS_ATTEMPT_FAILED_TAG,
    WAITING_FOR_USER_TAG,
)
from screen_agent.observability.stream import EventStream
from screen_agent.vision.coords import ScreenGeometry
from screen_agent.vision.grid import VisualStrategy, draw_grid, parse_strategy, select_strategy
from screen_agent.vision.set_of_marks import UIElement, collect_elements, draw_marks, find_element

logger = logging.getLogger(__name__)

MAX_FATAL_STREAK = 3
GO_HOME_SETTLE_SECONDS = 1.0
ERROR_RETRY_DELAY_SECONDS = 0.5
ERROR_EXCERPT_LEN = 50

SleepFn = Callable[[float], Awaitable[None]]

_PY_LEVEL = {
    LogLevel.INFO: logging.INFO,
    LogLevel.ACTION: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class TaskExecutor:
    def __init__(
        self,
        driver: Driver,
        model_client: ModelClient,
        settings: Optional[ExecutorSettings] = None,
        sleep: Optional[SleepFn] = None,
        logs: Optional[EventStream[LogEntry]] = None,
        status: Optional[EventStream[StatusUpdate]] = None,
    ) -> None:
        self.driver = driver
        self.model_client = model_client
        self.settings = settings or ExecutorSettings()
        self.strategy: VisualStrategy = parse_strategy(self.settings.visual_strategy)
        self.logs: EventStream[LogEntry] = logs or EventStream(persist_path=self.settings.events_file)
        self.status: EventStream[StatusUpdate] = status or EventStream()
        self.geometry = ScreenGeometry()
        self.history = ActionHistory(self.settings.history_limit)

        self._sleep: SleepFn = sleep or asyncio.sleep
        self._execution_status = ExecutionStatus.idle()
        self._paused = False
        self._stop_requested = False
        self._fatal_streak = 0
        self._elements: List[UIElement] = []
        # Whole log of the current task; consumers apply their own limits.
        self._log_buffer: List[LogEntry] = []
        self._task: Optional[asyncio.Task] = None
        self._result: Optional[TaskResult] = None
        self._current_task_text: str = ""
        self._step = 0

    # ------------------------------------------------------------------ state

    @property
    def execution_status(self) -> ExecutionStatus:
        return self._execution_status

    @property
    def result(self) -> Optional[TaskResult]:
        return self._result

    @property
    def current_task(self) -> str:
        return self._current_task_text

    @property
    def current_step(self) -> int:
        return self._step

    @property
    def elements(self) -> List[UIElement]:
        """Marked elements of the most recent capture."""
        return list(self._elements)

    def is_paused(self) -> bool:
        return self._paused

    def history_summary(self) -> str:
        return self.history.summary()

    def full_log_text(self) -> str:
        return "\n".join(entry.format_line() for entry in self._log_buffer)

    def recent_logs(self, limit: int = 100) -> List[LogEntry]:
        if limit <= 0:
            return []
        return self._log_buffer[-limit:]

    # --------------------------------------------------------------- controls

    def pause(self) -> None:
        if not self._execution_status.is_running or self._paused:
            return
        self._paused = True
        self._log(LogLevel.INFO, "Task paused")
        self._publish_status("Paused")

    def resume(self) -> None:
        if not self._execution_status.is_running or not self._paused:
            return
        self._paused = False
        self._log(LogLevel.INFO, "Task resumed")
        self._publish_status("Running")

    def stop(self) -> None:
        """Cancel the running task; an in-flight device or network call may still complete."""
        self._stop_requested = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._execution_status.is_running:
            self._execution_status = ExecutionStatus.cancelled()
            self._paused = False
            self._log(LogLevel.WARNING, "Task stopped by user")
            self._publish_status("Cancelled")

    def start(self, task: str) -> "asyncio.Task[TaskResult]":
        """Schedule execute_task on the running loop and return its handle."""
        return asyncio.ensure_future(self.execute_task(task))

    # ------------------------------------------------------------------- run

    async def execute_task(self, task: str) -> TaskResult:
        if self._execution_status.is_running:
            return TaskFailed(error="already running")

        self._reset(task)
        self._execution_status = ExecutionStatus.running()
        self._log(LogLevel.INFO, f"Starting task: {task}")
        self._publish_status("Running", detail=task)

        self._task = asyncio.ensure_future(self._run(task))
        try:
            result = await self._task
        except asyncio.CancelledError:
            if not self._stop_requested:
                raise
            result = TaskCancelled()
            if self._execution_status.is_running:
                self._execution_status = ExecutionStatus.cancelled()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Task loop crashed")
            result = self._fail(f"Unexpected error: {exc}")
        finally:
            self._task = None
            self._paused = False

        self._result = result
        return result

    def _reset(self, task: str) -> None:
        self.history.clear()
        self._log_buffer.clear()
        self._paused = False
        self._stop_requested = False
        self._fatal_streak = 0
        self._elements = []
        self._result = None
        self._current_task_text = task
        self._step = 0

    async def _run(self, task: str) -> TaskResult:
        if self.settings.go_home_first:
            self._log(LogLevel.ACTION, "Returning to home screen")
            await self._call_driver(self.driver.press_home)
            await self._sleep(GO_HOME_SETTLE_SECONDS)

        max_steps = self.settings.max_steps
        while self._execution_status.is_running and self._step < max_steps:
            await self._wait_while_paused()
            if not self._execution_status.is_running:
                break

            self._step += 1
            self._log(LogLevel.INFO, f"Step {self._step}/{max_steps}")
            self._publish_status(f"Step {self._step}/{max_steps}", detail="Analyzing screen")

            try:
                response = await self._analyze(task)
            except asyncio.CancelledError:
                raise
            except ConfigurationError as exc:
                return self._fail(str(exc))
            except Exception as exc:  # noqa: BLE001
                self._log(LogLevel.WARNING, f"Analysis failed: {exc}")
                if is_fatal_error(exc):
                    self._fatal_streak += 1
                    if self._fatal_streak >= MAX_FATAL_STREAK:
                        return self._fail(f"Fatal API error, giving up after {self._fatal_streak} attempts: {exc}")
                self.history.add(f"{PREVIOUS_ATTEMPT_FAILED_TAG} {str(exc)[:ERROR_EXCERPT_LEN]}")
                await self._sleep(ERROR_RETRY_DELAY_SECONDS)
                continue

            self._fatal_streak = 0
            if not self._execution_status.is_running:
                break

            self._log_response(response)

            terminal = response.terminal_action()
            if isinstance(terminal, Done):
                self._log(LogLevel.INFO, f"Task completed: {terminal.message}")
                self._execution_status = ExecutionStatus.completed()
                self._publish_status("Completed", detail=terminal.message)
                return TaskSuccess(message=terminal.message)

            if isinstance(terminal, AskUser):
                await self._ask_user(terminal)
                continue

            await self._execute_actions(response.get_all_actions())
            if not self._execution_status.is_running:
                break
            await self._sleep(self.settings.step_delay_ms / 1000.0)

        if self._execution_status.is_running:
            message = f"Reached max steps ({max_steps})"
            self._log(LogLevel.WARNING, message)
            self._execution_status = ExecutionStatus.completed()
            self._publish_status("Completed", detail=message)
            return TaskSuccess(message=message)
        return TaskCancelled()

    async def _analyze(self, task: str) -> AIResponse:
        image, elements = await self._capture()
        return await self.model_client.analyze(
            image,
            task,
            self.history.entries(),
            elements=elements,
            geometry=self.geometry,
        )

    async def _capture(self) -> Tuple[Image.Image, List[UIElement]]:
        screenshot: Image.Image = await asyncio.to_thread(self.driver.capture_screen)
        if self.geometry.update(*screenshot.size):
            logger.info("Screen size is now %sx%s", self.geometry.width, self.geometry.height)

        nodes = await asyncio.to_thread(self.driver.capture_ui_tree)
        elements = collect_elements(nodes or [])
        self._elements = elements

        strategy = select_strategy(self.strategy, len(elements))
        if strategy == VisualStrategy.SOM and elements:
            self._log(LogLevel.INFO, f"Marked {len(elements)} interactive elements")
            return draw_marks(screenshot, elements), elements
        if strategy == VisualStrategy.GRID:
            return draw_grid(screenshot), elements
        return screenshot, elements

    async def _ask_user(self, action: AskUser) -> None:
        self._paused = True
        self.history.add(f"{WAITING_FOR_USER_TAG} {action.reason}")
        detail = action.reason if not action.suggestion else f"{action.reason} ({action.suggestion})"
        self._log(LogLevel.WARNING, f"Waiting for user: {detail}")
        self._publish_status("Waiting for user", detail=detail)
        await self._wait_while_paused()

    async def _execute_actions(self, actions: List[Any]) -> None:
        for index, action in enumerate(actions):
            await self._wait_while_paused()
            if not self._execution_status.is_running:
                return
            if is_terminal(action):
                continue

            description = action.describe()
            self._publish_status(f"Step {self._step}/{self.settings.max_steps}", detail=description)
            self._log(LogLevel.ACTION, description)

            outcome = await self._execute_action(action)
            if outcome.ok:
                self.history.add(description)
            else:
                tag = LAUNCH_FAILED_TAG if isinstance(action, Launch) else ACTION_FAILED_TAG
                self.history.add(f"{tag} {outcome.message}")
                self._log(LogLevel.WARNING, f"{description} failed: {outcome.message}")

            if index < len(actions) - 1:
                await self._sleep(self.settings.action_delay_ms / 1000.0)

    async def _execute_action(self, action: Any) -> DriverResult:
        if isinstance(action, Tap):
            return await self._call_driver(self.driver.tap, action.x, action.y)
        if isinstance(action, TapMark):
            element = find_element(self._elements, action.mark_id)
            if element is None:
                return DriverResult.failure(f"mark {action.mark_id} not found")
            return await self._call_driver(self.driver.tap, element.center_x, element.center_y)
        if isinstance(action, Swipe):
            return await self._call_driver(
                self.driver.swipe, action.x1, action.y1, action.x2, action.y2, action.duration_ms
            )
        if isinstance(action, LongPress):
            return await self._call_driver(self.driver.long_press, action.x, action.y, action.duration_ms)
        if isinstance(action, Input):
            return await self._call_driver(self.driver.type_text, action.text)
        if isinstance(action, Enter):
            return await self._call_driver(self.driver.press_enter)
        if isinstance(action, Back):
            return await self._call_driver(self.driver.press_back)
        if isinstance(action, Home):
            return await self._call_driver(self.driver.press_home)
        if isinstance(action, Wait):
            await self._sleep(action.ms / 1000.0)
            return DriverResult.success()
        if isinstance(action, Launch):
            return await self._call_driver(self.driver.launch_app, action.app_name)
        return DriverResult.failure(f"unsupported action: {action!r}")

    async def _call_driver(self, func: Callable[..., DriverResult], *args: Any) -> DriverResult:
        try:
            result = await asyncio.to_thread(func, *args)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Driver call %s failed: %s", getattr(func, "__name__", func), exc)
            return DriverResult.failure(str(exc) or type(exc).__name__)
        if result is None:
            return DriverResult.success()
        return result

    async def _wait_while_paused(self) -> None:
        interval = self.settings.pause_poll_ms / 1000.0
        while self._paused and self._execution_status.is_running:
            await self._sleep(interval)

    # ---------------------------------------------------------------- events

    def _fail(self, message: str) -> TaskFailed:
        self._log(LogLevel.ERROR, message)
        self._execution_status = ExecutionStatus.error(message)
        self._publish_status("Error", detail=message)
        return TaskFailed(error=message)

    def _log_response(self, response: AIResponse) -> None:
        actions = response.get_all_actions()
        self._log(LogLevel.INFO, f"Model returned {len(actions)} action(s)")
        if response.thinking_text:
            self._log(LogLevel.INFO, f"Thinking: {response.thinking_text[:200]}")
        if response.status_text:
            self._log(LogLevel.INFO, f"Status: {response.status_text}")

    def _log(self, level: LogLevel, message: str) -> None:
        entry = LogEntry(level=level, message=message)
        self._log_buffer.append(entry)
        logger.log(_PY_LEVEL[level], message)
        self.logs.publish(entry)

    def _publish_status(self, status: str, detail: str = "") -> None:
        self.status.publish(StatusUpdate(status=status, detail=detail, paused=self._paused))


__all__ = ["TaskExecutor"]

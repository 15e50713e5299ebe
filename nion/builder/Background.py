"""
    Background execution of handlers.

    A handler decorated with :py:func:`do_in_background` runs on its own worker thread. The worker receives a
    :py:class:`BackgroundEvent` through which it reports progress and observes cancellation requests. When the
    worker finishes, the "ended" notification and the rest of the handler chain are handed back to the initiating
    context through a dispatcher.

    Cancellation is cooperative. The initiator moves the cancel state from NONE to REQUESTED; the worker moves it on
    to PROCESSING and COMPLETED at its own checkpoints. The state never moves backwards.
"""

from __future__ import annotations

# standard libraries
import asyncio
import dataclasses
import enum
import logging
import threading
import traceback
import typing

# third party libraries
from nion.utils import Observable
from nion.utils import Process

# local libraries
# none

_F = typing.TypeVar("_F", bound=typing.Callable[..., typing.Any])

DEFAULT_PROGRESS_MESSAGE = "label.processing"


class CancelState(enum.IntEnum):
    NONE = 0
    REQUESTED = 1
    PROCESSING = 2
    COMPLETED = 3


class TaskState(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclasses.dataclass(frozen=True)
class BackgroundTaskDescriptor:
    method: str
    progress_message: str = DEFAULT_PROGRESS_MESSAGE
    cancelable: bool = False
    progress_start: int = 0
    progress_end: int = 100
    progress_value: int = 0
    blocking: bool = False
    indeterminate: bool = True


def do_in_background(*, progress_message: str = DEFAULT_PROGRESS_MESSAGE, cancelable: bool = False,
                     progress_start: int = 0, progress_end: int = 100, progress_value: typing.Optional[int] = None,
                     blocking: bool = False, indeterminate: bool = True) -> typing.Callable[[_F], _F]:
    """Mark a handler method to run on a worker thread.

    The handler should accept a :py:class:`BackgroundEvent` as its event parameter to report progress and check
    for cancellation. ``progress_message`` is a resource key.
    """
    def decorator(fn: _F) -> _F:
        setattr(fn, "background_task_descriptor", BackgroundTaskDescriptor(
            method=fn.__name__,
            progress_message=progress_message,
            cancelable=cancelable,
            progress_start=progress_start,
            progress_end=progress_end,
            progress_value=progress_value if progress_value is not None else progress_start,
            blocking=blocking,
            indeterminate=indeterminate))
        return fn
    return decorator


def get_background_task_descriptor(fn: typing.Any) -> typing.Optional[BackgroundTaskDescriptor]:
    return typing.cast(typing.Optional[BackgroundTaskDescriptor],
                       getattr(getattr(fn, "__func__", fn), "background_task_descriptor", None))


class BackgroundEventListener(typing.Protocol):
    def background_task_started(self, event: BackgroundEvent) -> None: ...
    def background_task_ended(self, event: BackgroundEvent) -> None: ...


def _notify(listeners: typing.Sequence[typing.Any], method_name: str, event: BackgroundEvent) -> None:
    for listener in listeners:
        fn = getattr(listener, method_name, None)
        if callable(fn):
            try:
                fn(event)
            except Exception as e:
                logging.debug("Background listener error: %s", e)
                traceback.print_exc()


class BackgroundEvent(Observable.Observable):
    """The progress and cancellation handle shared by the initiator and the worker.

    Progress changes notify ``property_changed_event`` (``progress_value``, ``progress_message``,
    ``cancel_state``) and are relayed to the listeners' ``background_task_progress`` method if present.
    """

    def __init__(self, descriptor: BackgroundTaskDescriptor, source: typing.Any = None,
                 original_event: typing.Any = None, build_result: typing.Any = None,
                 progress_message: typing.Optional[str] = None,
                 listeners: typing.Sequence[typing.Any] = ()) -> None:
        super().__init__()
        self.descriptor = descriptor
        self.source = source
        self.original_event = original_event
        self.build_result = build_result
        self.progress_start = descriptor.progress_start
        self.progress_end = descriptor.progress_end
        self.indeterminate = descriptor.indeterminate
        self.__progress_value = descriptor.progress_value
        self.__progress_message = progress_message if progress_message is not None else descriptor.progress_message
        self.__cancel_state = CancelState.NONE
        self.__cancel_history: typing.List[CancelState] = [CancelState.NONE]
        self.__task_state = TaskState.IDLE
        self.__lock = threading.RLock()
        self.__listeners = list(listeners)
        self.error: typing.Optional[BaseException] = None

    @property
    def cancelable(self) -> bool:
        return self.descriptor.cancelable

    @property
    def blocking(self) -> bool:
        return self.descriptor.blocking

    @property
    def progress_value(self) -> int:
        return self.__progress_value

    @progress_value.setter
    def progress_value(self, value: int) -> None:
        self.__progress_value = value
        self.notify_property_changed("progress_value")
        _notify(self.__listeners, "background_task_progress", self)

    @property
    def progress_message(self) -> str:
        return self.__progress_message

    @progress_message.setter
    def progress_message(self, value: str) -> None:
        self.__progress_message = value
        self.notify_property_changed("progress_message")
        _notify(self.__listeners, "background_task_progress", self)

    @property
    def cancel_state(self) -> CancelState:
        return self.__cancel_state

    @cancel_state.setter
    def cancel_state(self, value: CancelState) -> None:
        self.advance_cancel_state(value)

    @property
    def cancel_history(self) -> typing.Sequence[CancelState]:
        """The cancel states visited so far, in order."""
        with self.__lock:
            return list(self.__cancel_history)

    @property
    def is_cancel_requested(self) -> bool:
        return self.__cancel_state != CancelState.NONE

    @property
    def task_state(self) -> TaskState:
        return self.__task_state

    def advance_cancel_state(self, value: CancelState) -> bool:
        """Move the cancel state forward. Setting the current state again does nothing.

        Moving backwards is a programming error and raises ``ValueError``. Returns whether the state changed.
        """
        with self.__lock:
            if value < self.__cancel_state:
                raise ValueError(f"Cancel state cannot move from {self.__cancel_state.name} to {value.name}")
            if value == self.__cancel_state:
                return False
            self.__cancel_state = value
            self.__cancel_history.append(value)
        self.notify_property_changed("cancel_state")
        return True

    def request_cancel(self) -> bool:
        """Request cancellation from the initiating side. Returns whether the request was recorded.

        Ignored for tasks that are not cancelable and for tasks where cancellation is already underway.
        """
        if not self.cancelable:
            return False
        with self.__lock:
            if self.__cancel_state != CancelState.NONE:
                return False
            return self.advance_cancel_state(CancelState.REQUESTED)

    def _set_task_state(self, task_state: TaskState) -> None:
        self.__task_state = task_state
        self.notify_property_changed("task_state")


class Dispatcher(typing.Protocol):
    def dispatch(self, fn: typing.Callable[[], None]) -> None: ...


class ImmediateDispatcher:
    """Run handed-back work right away on whichever thread finishes the task."""

    def dispatch(self, fn: typing.Callable[[], None]) -> None:
        fn()


class TaskQueueDispatcher:
    """Queue handed-back work; the initiating thread runs it by calling :py:meth:`perform_tasks`."""

    def __init__(self, task_queue: typing.Optional[Process.TaskQueue] = None) -> None:
        self.task_queue = task_queue if task_queue is not None else Process.TaskQueue()

    def dispatch(self, fn: typing.Callable[[], None]) -> None:
        self.task_queue.put(fn)

    def perform_tasks(self) -> None:
        self.task_queue.perform_tasks()


class EventLoopDispatcher:
    """Hand work back to an asyncio event loop, typically the one driving the user interface."""

    def __init__(self, event_loop: asyncio.AbstractEventLoop) -> None:
        self.event_loop = event_loop

    def dispatch(self, fn: typing.Callable[[], None]) -> None:
        self.event_loop.call_soon_threadsafe(fn)


def run_in_background(event: BackgroundEvent, fn: typing.Callable[[BackgroundEvent], typing.Any],
                      dispatcher: Dispatcher, listeners: typing.Sequence[typing.Any],
                      done_fn: typing.Callable[[BackgroundEvent, typing.Any], None]) -> threading.Thread:
    """Run fn on a new worker thread.

    Fires ``background_task_started`` on the calling thread, then starts the worker. When the worker returns (or
    raises), ``background_task_ended`` and ``done_fn(event, result)`` run through the dispatcher, in that order.
    A worker exception is stored in ``event.error``.
    """
    event._set_task_state(TaskState.STARTING)
    _notify(listeners, "background_task_started", event)

    def finish(result: typing.Any) -> None:
        _notify(listeners, "background_task_ended", event)
        done_fn(event, result)

    def process() -> None:
        result = None
        try:
            result = fn(event)
        except Exception as e:
            logging.error("Background task '%s' failed", event.descriptor.method, exc_info=e)
            event.error = e
        if event.cancel_state != CancelState.NONE:
            event.advance_cancel_state(CancelState.COMPLETED)
            event._set_task_state(TaskState.CANCELLED)
        else:
            event._set_task_state(TaskState.COMPLETED)
        dispatcher.dispatch(lambda: finish(result))

    thread = threading.Thread(target=process, name=f"background-{event.descriptor.method}", daemon=True)
    event._set_task_state(TaskState.RUNNING)
    thread.start()
    return thread

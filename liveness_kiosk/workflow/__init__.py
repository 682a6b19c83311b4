from .states import WorkflowState
from .timers import Scheduler, ThreadingScheduler, ManualScheduler
from .dispatch import Dispatcher, InlineDispatcher, NotificationDispatcher
from .machine import (
    StateChange,
    PendingTransition,
    StateListener,
    WorkflowStateMachine,
    is_valid_transition,
)

__all__ = [
    "WorkflowState",
    "Scheduler",
    "ThreadingScheduler",
    "ManualScheduler",
    "Dispatcher",
    "InlineDispatcher",
    "NotificationDispatcher",
    "StateChange",
    "PendingTransition",
    "StateListener",
    "WorkflowStateMachine",
    "is_valid_transition",
]

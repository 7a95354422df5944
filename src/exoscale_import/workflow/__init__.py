"""Step workflow primitives for template imports."""

from .cancellation import StepCancelled, run_cancellable, wait_cancellable
from .runner import StepRunner, resolve_outcome
from .state import ImportState
from .step import Step, StepAction

__all__ = [
    'ImportState',
    'Step',
    'StepAction',
    'StepCancelled',
    'StepRunner',
    'resolve_outcome',
    'run_cancellable',
    'wait_cancellable',
]

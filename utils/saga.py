"""
Saga primitive for operations that span the database and Stripe.

There is no shared transaction between the two systems, so a multi-step
operation is written as an ordered list of steps, each an action with an
optional compensation. When a step fails, the compensations of the steps
that already completed run in reverse order and the original exception is
re-raised. A compensation that itself fails is logged as a
``CompensationFailure`` and recorded on the saga; it never replaces the
original error.

A step may also name exception types it tolerates: those are logged and the
saga moves on to the next step (best-effort cleanup).

    saga = Saga('confirm_pre_registration', {'community': community})
    saga.step('subscription', create_subscription, compensation=cancel_subscription)
    saga.step('member', insert_member)
    context = saga.run()
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

logger = logging.getLogger(__name__)


Action = Callable[[Dict[str, Any]], Any]
Compensation = Callable[[Dict[str, Any], Any], None]


class CompensationFailure(Exception):
    """A compensating action failed while rolling back a saga."""

    def __init__(self, saga_name: str, step_name: str, error: Exception):
        super().__init__(
            f"Saga '{saga_name}': compensation for step '{step_name}' failed: {error}"
        )
        self.saga_name = saga_name
        self.step_name = step_name
        self.error = error


@dataclass
class SagaStep:
    name: str
    action: Action
    compensation: Optional[Compensation] = None
    tolerate: Tuple[Type[BaseException], ...] = ()


class Saga:
    """
    An ordered list of (action, compensation) steps.

    Each action receives the shared context dict; its return value is stored
    in the context under the step name so later steps and compensations can
    use it. A tolerated failure stores None.
    """

    def __init__(self, name: str, context: Optional[Dict[str, Any]] = None):
        self.name = name
        self.context: Dict[str, Any] = dict(context or {})
        self.steps: List[SagaStep] = []
        self.completed: List[Tuple[SagaStep, Any]] = []
        self.skipped: List[Tuple[str, Exception]] = []
        self.compensation_failures: List[CompensationFailure] = []

    def step(
        self,
        name: str,
        action: Action,
        compensation: Optional[Compensation] = None,
        tolerate: Tuple[Type[BaseException], ...] = (),
    ) -> 'Saga':
        if any(s.name == name for s in self.steps):
            raise ValueError(f"Duplicate saga step name: {name}")
        self.steps.append(SagaStep(name, action, compensation, tuple(tolerate)))
        return self

    @property
    def step_names(self) -> List[str]:
        return [s.name for s in self.steps]

    def run(self) -> Dict[str, Any]:
        """Run every step; returns the context holding each step's result."""
        for step in self.steps:
            try:
                result = step.action(self.context)
            except Exception as e:
                if step.tolerate and isinstance(e, step.tolerate):
                    logger.warning(f"Saga '{self.name}': step '{step.name}' failed, continuing: {e}")
                    self.skipped.append((step.name, e))
                    self.context[step.name] = None
                    continue
                logger.error(f"Saga '{self.name}' failed at step '{step.name}': {e}")
                self.compensate()
                raise
            self.context[step.name] = result
            self.completed.append((step, result))
        return self.context

    def compensate(self) -> None:
        """Undo completed steps in reverse order."""
        while self.completed:
            step, result = self.completed.pop()
            if step.compensation is None:
                continue
            try:
                step.compensation(self.context, result)
                logger.info(f"Saga '{self.name}': compensated step '{step.name}'")
            except Exception as e:
                failure = CompensationFailure(self.name, step.name, e)
                self.compensation_failures.append(failure)
                logger.error(str(failure), exc_info=e)

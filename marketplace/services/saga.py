"""
Saga runner for multi-step ledger updates

The ledger has no multi-table transactions, so flows such as "payment
verified → booking paid → job assigned → application hired → notify" are
run as an ordered list of named steps. Each step commits on its own.

- A critical step that fails aborts the saga with SagaAborted. Steps that
  already completed stay completed; nothing is rolled back.
- A best-effort step that fails is logged and recorded, and the saga moves on.

The result records which steps completed and the furthest one reached, so a
partially-advanced flow can be diagnosed from logs or API responses.
"""

import inspect
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class SagaAborted(Exception):
    """A critical step failed; earlier steps remain applied"""

    def __init__(self, saga: str, step: str, completed: list[str], error: Exception):
        super().__init__(f"{saga}: step '{step}' failed: {error}")
        self.saga = saga
        self.step = step
        self.completed = completed
        self.error = error

    @property
    def furthest_step(self) -> Optional[str]:
        return self.completed[-1] if self.completed else None


class SagaResult:
    def __init__(self, name: str):
        self.name = name
        self.completed: list[str] = []
        self.failed: dict[str, str] = {}
        self.outputs: dict[str, Any] = {}

    @property
    def furthest_step(self) -> Optional[str]:
        return self.completed[-1] if self.completed else None

    @property
    def fully_applied(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "saga": self.name,
            "completed_steps": list(self.completed),
            "failed_steps": dict(self.failed),
            "furthest_step": self.furthest_step,
        }


class Saga:
    """Ordered named steps with critical/best-effort semantics"""

    def __init__(self, name: str, on_step_error: Optional[Callable[[], None]] = None):
        self.name = name
        self.on_step_error = on_step_error
        self._steps: list[tuple[str, Callable[[], Any], bool]] = []

    def step(self, name: str, action: Callable[[], Any], critical: bool = False) -> "Saga":
        self._steps.append((name, action, critical))
        return self

    @property
    def step_names(self) -> list[str]:
        return [name for name, _, _ in self._steps]

    async def run(self) -> SagaResult:
        result = SagaResult(self.name)

        for name, action, critical in self._steps:
            try:
                output = action()
                if inspect.isawaitable(output):
                    output = await output
            except Exception as e:
                # Discard the failed step's pending changes only
                if self.on_step_error:
                    try:
                        self.on_step_error()
                    except Exception as cleanup_error:
                        logger.error(f"❌ {self.name}: cleanup after '{name}' failed: {cleanup_error}")

                if critical:
                    logger.error(
                        f"❌ {self.name}: critical step '{name}' failed after {result.completed}: {e}"
                    )
                    raise SagaAborted(self.name, name, list(result.completed), e) from e

                logger.warning(f"⚠️ {self.name}: step '{name}' failed (non-fatal): {e}")
                result.failed[name] = str(e)
                continue

            result.completed.append(name)
            result.outputs[name] = output

        if result.failed:
            logger.warning(
                f"⚠️ {self.name} finished partially: furthest={result.furthest_step}, "
                f"failed={list(result.failed)}"
            )
        else:
            logger.info(f"✅ {self.name} completed: {result.completed}")
        return result

# facerec_deploy/models/result.py
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
import json

from facerec_deploy.Keywords import StepStatus


# One reconciled resource inside a run
@dataclass
class StepOutcome:
    step: str        # "stores", "role", "function", "trigger"
    resource: str    # bucket name, role arn, ...
    status: StepStatus
    detail: str = ""


@dataclass
class OrchestrationResult:
    """Outcome of one end-to-end run; ``error`` is set on the first fatal failure."""
    ok: bool = False
    role_arn: Optional[str] = None
    function_arn: Optional[str] = None
    steps: List[StepOutcome] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[Dict[str, str]] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def record(self, outcome: StepOutcome) -> StepOutcome:
        self.steps.append(outcome)
        return outcome

    def statuses(self, step: Optional[str] = None) -> List[StepStatus]:
        return [s.status for s in self.steps if step is None or s.step == step]

    def fail(self, step: str, exc: BaseException) -> "OrchestrationResult":
        self.ok = False
        self.failed_step = step
        self.error = {"type": type(exc).__name__, "message": str(exc)}
        return self


# ---- Helpers ----
def to_dict(obj: Any) -> Dict[str, Any]:
    return asdict(obj)


def to_json(obj: Any, pretty: bool = False) -> str:
    if pretty:
        return json.dumps(asdict(obj), ensure_ascii=False, indent=2, default=str)
    return json.dumps(asdict(obj), ensure_ascii=False, separators=(",", ":"), default=str)


__all__ = ["StepOutcome", "OrchestrationResult", "to_dict", "to_json"]

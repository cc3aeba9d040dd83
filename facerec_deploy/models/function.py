# facerec_deploy/models/function.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from facerec_deploy.Keywords import FunctionState, OBJECT_CREATED_EVENTS


@dataclass
class FunctionHandle:
    name: str
    arn: str
    state: FunctionState
    transition: FunctionState  # CREATING or UPDATING


@dataclass(frozen=True)
class TriggerBinding:
    """Inbound bucket -> function association for object-created events."""
    statement_id: str
    source_arn: str
    source_account: str
    function_arn: str
    notification_id: str
    events: List[str] = field(default_factory=lambda: list(OBJECT_CREATED_EVENTS))

    def to_notification_configuration(self) -> Dict[str, Any]:
        # Single entry: applying this replaces whatever the bucket had before
        return {
            "LambdaFunctionConfigurations": [
                {
                    "Id": self.notification_id,
                    "LambdaFunctionArn": self.function_arn,
                    "Events": list(self.events),
                }
            ]
        }


__all__ = ["FunctionHandle", "TriggerBinding"]

# facerec_deploy/models/config.py
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
import json


# Every name the pipeline touches, derived once per run
@dataclass(frozen=True)
class PipelineConfig:
    region: str
    prefix: str
    account_id: str
    in_bucket: str
    out_bucket: str
    lambda_name: str
    role_name: str
    policy_name: str
    statement_id: str
    notification_id: str
    fallback_role_names: List[str] = field(default_factory=list)
    runtime: str = "dotnet8"
    handler: str = "FaceRecognitionLambda::FaceRecognitionLambda.Function::FunctionHandler"
    timeout: int = 30           # seconds
    memory_size: int = 256      # MB
    settle_seconds: float = 5.0
    trust_policy_path: Optional[str] = None
    policy_template_path: Optional[str] = None

    @property
    def in_bucket_arn(self) -> str:
        return f"arn:aws:s3:::{self.in_bucket}"

    @property
    def out_bucket_arn(self) -> str:
        return f"arn:aws:s3:::{self.out_bucket}"

    def template_values(self) -> Dict[str, str]:
        """Placeholder values for the permission-policy template."""
        return {
            "IN_BUCKET": self.in_bucket,
            "OUT_BUCKET": self.out_bucket,
            "AWS_REGION": self.region,
            "ACCOUNT_ID": self.account_id,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, pretty: bool = False) -> str:
        if pretty:
            return json.dumps(self.to_dict(), ensure_ascii=False, indent=2)
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))


__all__ = ["PipelineConfig"]

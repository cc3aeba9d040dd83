# facerec_deploy/services/trigger_wirer.py
from __future__ import annotations

import json
import logging
from typing import List, Set

from botocore.exceptions import ClientError

from facerec_deploy.Keywords import INVOKE_ACTION, S3_PRINCIPAL, StepStatus
from facerec_deploy.errors import (
    classify_client_error,
    error_code,
    is_not_found,
)
from facerec_deploy.models.config import PipelineConfig
from facerec_deploy.models.function import FunctionHandle, TriggerBinding
from facerec_deploy.models.result import StepOutcome
from facerec_deploy.utils.s3_handler import S3Handler

logger = logging.getLogger(__name__)


def _same_lambda_binding(current: dict, binding: TriggerBinding) -> bool:
    entries = current.get("LambdaFunctionConfigurations") or []
    if len(entries) != 1:
        return False
    entry = entries[0]
    return (
        entry.get("Id") == binding.notification_id
        and entry.get("LambdaFunctionArn") == binding.function_arn
        and sorted(entry.get("Events", [])) == sorted(binding.events)
    )


class TriggerWirer:
    """
    Let S3 invoke the function, then point the inbound bucket's
    object-created events at it.
    """

    def __init__(self, lambda_client, s3_handler: S3Handler, config: PipelineConfig) -> None:
        self._lambda = lambda_client
        self._s3 = s3_handler
        self._config = config

    def binding_for(self, function: FunctionHandle) -> TriggerBinding:
        cfg = self._config
        return TriggerBinding(
            statement_id=cfg.statement_id,
            source_arn=cfg.in_bucket_arn,
            source_account=cfg.account_id,
            function_arn=function.arn,
            notification_id=cfg.notification_id,
        )

    def statement_ids(self) -> Set[str]:
        """Sids present in the function's resource policy (empty when it has none)."""
        try:
            response = self._lambda.get_policy(FunctionName=self._config.lambda_name)
        except ClientError as e:
            if is_not_found(e):
                return set()
            raise classify_client_error(e, f"get_policy {self._config.lambda_name}") from e
        policy = json.loads(response.get("Policy") or "{}")
        return {s.get("Sid") for s in policy.get("Statement", []) if s.get("Sid")}

    def grant_invoke(self, binding: TriggerBinding) -> StepOutcome:
        if binding.statement_id in self.statement_ids():
            logger.info(f"Invoke permission already present (Sid={binding.statement_id})")
            return StepOutcome("trigger", binding.statement_id, StepStatus.NOOP, "permission already granted")

        try:
            self._lambda.add_permission(
                FunctionName=self._config.lambda_name,
                StatementId=binding.statement_id,
                Action=INVOKE_ACTION,
                Principal=S3_PRINCIPAL,
                SourceArn=binding.source_arn,
                SourceAccount=binding.source_account,
            )
        except ClientError as e:
            if error_code(e) == "ResourceConflictException":
                logger.info(f"Invoke permission Sid={binding.statement_id} already exists")
                return StepOutcome("trigger", binding.statement_id, StepStatus.ABSORBED, "duplicate statement id")
            raise classify_client_error(e, f"add_permission {binding.statement_id}") from e

        logger.info(f"Granted {S3_PRINCIPAL} invoke permission (Sid={binding.statement_id})")
        return StepOutcome("trigger", binding.statement_id, StepStatus.CREATED, "permission granted")

    @staticmethod
    def _discarded_ids(current: dict, binding: TriggerBinding) -> List[str]:
        discarded = []
        for key, entries in current.items():
            if not isinstance(entries, list):
                continue
            for entry in entries:
                entry_id = entry.get("Id", "<unnamed>")
                if key == "LambdaFunctionConfigurations" and entry_id == binding.notification_id:
                    continue
                discarded.append(f"{key}:{entry_id}")
        return discarded

    def install_notification(self, binding: TriggerBinding) -> StepOutcome:
        """
        Replace the bucket's notification configuration with this binding.

        Existing unrelated bindings on the bucket are dropped, not merged.
        """
        bucket = self._config.in_bucket
        current = self._s3.get_notification_configuration(bucket)
        discarded = self._discarded_ids(current, binding)
        unchanged = not discarded and _same_lambda_binding(current, binding)
        if discarded:
            logger.warning(f"Replacing notification configuration of {bucket}, discarding: {', '.join(discarded)}")

        document = binding.to_notification_configuration()
        logger.debug("Notification configuration: %s", json.dumps(document))
        self._s3.put_notification_configuration(bucket, document)
        logger.info(f"Trigger set (s3:ObjectCreated:* on {bucket} -> {self._config.lambda_name})")

        if unchanged:
            return StepOutcome("trigger", bucket, StepStatus.NOOP, "notification unchanged, re-applied")
        if not discarded and not current.get("LambdaFunctionConfigurations"):
            return StepOutcome("trigger", bucket, StepStatus.CREATED, "notification installed")
        detail = "notification replaced"
        if discarded:
            detail += f"; discarded {len(discarded)} prior binding(s)"
        return StepOutcome("trigger", bucket, StepStatus.UPDATED, detail)

    def wire(self, function: FunctionHandle) -> List[StepOutcome]:
        binding = self.binding_for(function)
        return [self.grant_invoke(binding), self.install_notification(binding)]


__all__ = ["TriggerWirer"]

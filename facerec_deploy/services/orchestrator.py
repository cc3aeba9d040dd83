# facerec_deploy/services/orchestrator.py
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Union

from botocore.exceptions import BotoCoreError, ClientError

from facerec_deploy.Keywords import FunctionState, RoleSource, StepStatus
from facerec_deploy.errors import NotFound, ProviderError, ProvisionError, classify_client_error
from facerec_deploy.models.IAM import RoleHandle
from facerec_deploy.models.config import PipelineConfig
from facerec_deploy.models.result import OrchestrationResult, StepOutcome
from facerec_deploy.services.config_resolver import resolve_config
from facerec_deploy.services.function_deployer import FunctionDeployer
from facerec_deploy.services.role_resolver import RoleResolver
from facerec_deploy.services.store_provisioner import StoreProvisioner
from facerec_deploy.services.trigger_wirer import TriggerWirer
from facerec_deploy.session import AwsClients
from facerec_deploy.utils.s3_handler import S3Handler

logger = logging.getLogger(__name__)


def _role_outcome(role: RoleHandle) -> StepOutcome:
    if role.created:
        status, detail = StepStatus.CREATED, "role created"
    elif role.source is RoleSource.CREATED:
        status, detail = StepStatus.ABSORBED, "role created concurrently, reused"
    else:
        status, detail = StepStatus.NOOP, f"using {role.source.value} role"
    if role.policy_arn:
        detail += "; policy created" if role.policy_created else "; policy version published"
    if role.warnings:
        status = StepStatus.WARNING if status is StepStatus.NOOP else status
        detail += "; " + "; ".join(role.warnings)
    return StepOutcome("role", role.arn, status, detail)


class ProvisioningOrchestrator:
    """
    Runs ConfigResolver -> StoreProvisioner -> RoleResolver ->
    FunctionDeployer -> TriggerWirer strictly in order and stops at the
    first fatal error. Nothing is rolled back; running again reconverges.
    """

    def __init__(
        self,
        clients: AwsClients,
        *,
        env: Optional[Mapping[str, str]] = None,
        sleep: Callable[[float], None] = time.sleep,
        waiter_config: Optional[Dict[str, int]] = None,
    ) -> None:
        self._clients = clients
        self._env = env
        self._sleep = sleep
        self._waiter_config = waiter_config
        self.config: Optional[PipelineConfig] = None

    def _settle(self, role: RoleHandle) -> None:
        # IAM is eventually consistent; create_function may not see a brand-new role yet
        if role.created or role.policy_created:
            logger.info(f"Waiting {self.config.settle_seconds}s for IAM propagation...")
            self._sleep(self.config.settle_seconds)

    def run(self, artifact: Union[str, Path]) -> OrchestrationResult:
        result = OrchestrationResult()
        step = "config"
        try:
            self.config = cfg = resolve_config(self._clients.sts, self._env)
            s3 = S3Handler(region_name=cfg.region, client=self._clients.s3)

            step = "artifact"
            if not Path(artifact).is_file():
                raise NotFound(f"Function artifact not found: {artifact}")

            step = "stores"
            stores = StoreProvisioner(s3)
            for bucket in (cfg.in_bucket, cfg.out_bucket):
                result.record(stores.ensure_store(bucket))

            step = "role"
            role = RoleResolver(self._clients.iam, cfg).resolve()
            result.role_arn = role.arn
            result.record(_role_outcome(role))
            self._settle(role)

            step = "function"
            deployer = FunctionDeployer(
                self._clients.lambda_, cfg, waiter_config=self._waiter_config, sleep=self._sleep
            )
            function = deployer.deploy(role, artifact)
            result.function_arn = function.arn
            status = StepStatus.CREATED if function.transition is FunctionState.CREATING else StepStatus.UPDATED
            result.record(StepOutcome("function", function.arn, status, f"state {function.state.value}"))

            step = "trigger"
            for outcome in TriggerWirer(self._clients.lambda_, s3, cfg).wire(function):
                result.record(outcome)

        except ProvisionError as e:
            logger.error(f"Provisioning failed during '{step}': {e}")
            return result.fail(step, e)
        except ClientError as e:
            err = classify_client_error(e, step)
            logger.error(f"Provisioning failed during '{step}': {err}")
            return result.fail(step, err)
        except BotoCoreError as e:
            err = ProviderError(f"{step}: {e}")
            logger.error(f"Provisioning failed during '{step}': {err}")
            return result.fail(step, err)

        result.ok = True
        logger.info("Provisioning complete")
        return result


__all__ = ["ProvisioningOrchestrator"]

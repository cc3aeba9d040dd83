# facerec_deploy/services/function_deployer.py
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from botocore.exceptions import ClientError, WaiterError

from facerec_deploy.Keywords import FunctionState
from facerec_deploy.errors import (
    ProviderError,
    classify_client_error,
    error_code,
    error_message,
    is_not_found,
)
from facerec_deploy.models.IAM import RoleHandle
from facerec_deploy.models.config import PipelineConfig
from facerec_deploy.models.function import FunctionHandle
from facerec_deploy.services.artifact_builder import read_artifact

logger = logging.getLogger(__name__)

DEFAULT_WAITER_CONFIG = {"Delay": 5, "MaxAttempts": 60}
ROLE_PROPAGATION_RETRIES = 5


def _change_in_flight(conf: Dict[str, Any]) -> bool:
    # Lambda rejects code and configuration updates until these settle
    return conf.get("State") == "Pending" or conf.get("LastUpdateStatus") == "InProgress"


def _role_not_ready(e: ClientError) -> bool:
    # Lambda rejects a role IAM has not finished propagating yet
    return (
        error_code(e) == "InvalidParameterValueException"
        and "role" in error_message(e).lower()
    )


class FunctionDeployer:
    """Create-or-update the Lambda function and wait until it is Active."""

    def __init__(
        self,
        lambda_client,
        config: PipelineConfig,
        *,
        waiter_config: Optional[Dict[str, int]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._lambda = lambda_client
        self._config = config
        self._waiter_config = waiter_config or dict(DEFAULT_WAITER_CONFIG)
        self._sleep = sleep

    def _environment(self) -> Dict[str, Any]:
        return {"Variables": {"OUTPUT_BUCKET": self._config.out_bucket}}

    def probe(self) -> Optional[Dict[str, Any]]:
        """The function's configuration, or None if it does not exist."""
        try:
            return self._lambda.get_function(FunctionName=self._config.lambda_name)["Configuration"]
        except ClientError as e:
            if is_not_found(e):
                return None
            raise classify_client_error(e, f"get_function {self._config.lambda_name}") from e

    def _create(self, role: RoleHandle, code: bytes) -> None:
        cfg = self._config
        attempt = 0
        while True:
            try:
                self._lambda.create_function(
                    FunctionName=cfg.lambda_name,
                    Runtime=cfg.runtime,
                    Role=role.arn,
                    Handler=cfg.handler,
                    Code={"ZipFile": code},
                    Timeout=cfg.timeout,
                    MemorySize=cfg.memory_size,
                    Environment=self._environment(),
                )
                logger.info(f"Created Lambda function: {cfg.lambda_name}")
                return
            except ClientError as e:
                if _role_not_ready(e) and attempt < ROLE_PROPAGATION_RETRIES:
                    attempt += 1
                    logger.info(
                        f"Role {role.name} not assumable yet, retrying in {cfg.settle_seconds}s "
                        f"({attempt}/{ROLE_PROPAGATION_RETRIES})"
                    )
                    self._sleep(cfg.settle_seconds)
                    continue
                raise classify_client_error(e, f"create_function {cfg.lambda_name}") from e

    def _update(self, code: bytes) -> None:
        cfg = self._config
        try:
            self._lambda.update_function_code(FunctionName=cfg.lambda_name, ZipFile=code)
            # configuration updates are rejected while the code update is in progress
            self._wait("function_updated")
            self._lambda.update_function_configuration(
                FunctionName=cfg.lambda_name,
                Handler=cfg.handler,
                Timeout=cfg.timeout,
                MemorySize=cfg.memory_size,
                Environment=self._environment(),
            )
        except ClientError as e:
            raise classify_client_error(e, f"update {cfg.lambda_name}") from e
        logger.info(f"Updated Lambda code and configuration: {cfg.lambda_name}")

    def _wait(self, waiter_name: str) -> None:
        waiter = self._lambda.get_waiter(waiter_name)
        try:
            waiter.wait(FunctionName=self._config.lambda_name, WaiterConfig=self._waiter_config)
        except WaiterError as e:
            state, reason = self._current_state()
            if state is FunctionState.FAILED:
                raise ProviderError(
                    f"Lambda {self._config.lambda_name} entered Failed state: {reason}"
                ) from e
            raise ProviderError(
                f"Timed out waiting for {self._config.lambda_name} ({waiter_name}): {e}"
            ) from e

    def _current_state(self):
        try:
            conf = self._lambda.get_function_configuration(FunctionName=self._config.lambda_name)
        except ClientError:
            logger.debug("Could not read function state after waiter failure", exc_info=True)
            return None, ""
        reason = f"{conf.get('StateReasonCode', '')} {conf.get('StateReason', '')}".strip()
        return FunctionState.from_aws(conf.get("State", "")), reason

    def wait_until_active(self) -> Dict[str, Any]:
        self._wait("function_updated")
        self._wait("function_active")
        try:
            return self._lambda.get_function_configuration(FunctionName=self._config.lambda_name)
        except ClientError as e:
            raise classify_client_error(e, f"get_function_configuration {self._config.lambda_name}") from e

    def deploy(self, role: RoleHandle, artifact: Union[str, Path]) -> FunctionHandle:
        code = read_artifact(artifact)

        current = self.probe()
        if current is None:
            transition = FunctionState.CREATING
            self._create(role, code)
        else:
            transition = FunctionState.UPDATING
            if _change_in_flight(current):
                # a previous run may have stopped while the function was still converging
                logger.info(f"Lambda {self._config.lambda_name} is still settling, waiting before update")
                self._wait("function_active")
                self._wait("function_updated")
            logger.info(f"Lambda exists, updating code and configuration: {self._config.lambda_name}")
            self._update(code)

        conf = self.wait_until_active()
        state = FunctionState.from_aws(conf.get("State", ""))
        logger.info(f"Lambda ARN: {conf['FunctionArn']}")
        return FunctionHandle(
            name=self._config.lambda_name,
            arn=conf["FunctionArn"],
            state=state,
            transition=transition,
        )


__all__ = ["FunctionDeployer"]

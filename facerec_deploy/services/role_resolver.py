# facerec_deploy/services/role_resolver.py
from __future__ import annotations

import functools
import logging
from typing import Callable, List, Optional, Sequence

from botocore.exceptions import ClientError

from facerec_deploy.Keywords import RoleSource
from facerec_deploy.errors import (
    NoUsableRoleError,
    StrategyFailure,
    classify_client_error,
    error_code,
    is_access_denied,
    is_already_exists,
    is_not_found,
)
from facerec_deploy.models.IAM import RoleHandle
from facerec_deploy.models.config import PipelineConfig
from facerec_deploy.services.policy_manager import PolicyManager
from facerec_deploy.utils import templates

logger = logging.getLogger(__name__)

# A strategy either yields a role, returns None when it does not apply,
# or raises StrategyFailure to hand over to the next one.
RoleStrategy = Callable[[PipelineConfig], Optional[RoleHandle]]


def _probe_role(iam, role_name: str, strategy: str) -> Optional[dict]:
    """Typed presence check: the role dict, or None when it does not exist."""
    try:
        return iam.get_role(RoleName=role_name)["Role"]
    except ClientError as e:
        if is_not_found(e):
            return None
        raise StrategyFailure(
            strategy,
            f"get_role {role_name} failed: {error_code(e)}",
            denied=is_access_denied(e),
        ) from e


def _strategy_name(strategy) -> str:
    if isinstance(strategy, functools.partial):
        return f"{strategy.func.__name__}({strategy.keywords.get('role_name', '')})"
    return getattr(strategy, "__name__", repr(strategy))


class RoleResolver:
    """
    Produce exactly one usable execution role.

    Strategies run in priority order and the first one that yields a role
    wins:

    1. the desired role, if it already exists (trusted as-is)
    2. create the desired role, then its permission policy
    3. each fallback role name, in order
    """

    def __init__(self, iam_client, config: PipelineConfig, policy_manager: Optional[PolicyManager] = None):
        self._iam = iam_client
        self._config = config
        self._policies = policy_manager or PolicyManager(iam_client)

    def strategies(self) -> List[RoleStrategy]:
        fallback = [
            functools.partial(self.use_fallback_role, role_name=name)
            for name in self._config.fallback_role_names
        ]
        return [self.use_existing_role, self.create_role_and_policy, *fallback]

    def resolve(self, strategies: Optional[Sequence[RoleStrategy]] = None) -> RoleHandle:
        failures: List[StrategyFailure] = []
        for strategy in strategies if strategies is not None else self.strategies():
            try:
                handle = strategy(self._config)
            except StrategyFailure as failure:
                failures.append(failure)
                continue
            if handle is not None:
                logger.info(f"Execution role resolved ({handle.source.value}): {handle.arn}")
                return handle
            failures.append(StrategyFailure(_strategy_name(strategy), "role not found"))
        raise NoUsableRoleError(failures)

    # ---- strategies ----

    def use_existing_role(self, config: PipelineConfig) -> Optional[RoleHandle]:
        role = _probe_role(self._iam, config.role_name, "existing-role")
        if role is None:
            logger.info(f"Role {config.role_name} does not exist yet")
            return None
        logger.info(f"Role exists: {config.role_name}")
        return RoleHandle(name=config.role_name, arn=role["Arn"], source=RoleSource.EXISTING)

    def create_role_and_policy(self, config: PipelineConfig) -> Optional[RoleHandle]:
        strategy = "create-role"
        trust = templates.trust_policy(config.trust_policy_path)
        try:
            role = self._iam.create_role(
                RoleName=config.role_name,
                AssumeRolePolicyDocument=trust,
                Description=f"Execution role for {config.lambda_name}",
            )["Role"]
            created = True
            logger.info(f"Created IAM role: {config.role_name}")
        except ClientError as e:
            if is_already_exists(e):
                role = _probe_role(self._iam, config.role_name, strategy)
                if role is None:
                    raise StrategyFailure(strategy, f"{config.role_name} vanished after EntityAlreadyExists") from e
                created = False
            elif is_access_denied(e):
                logger.info(f"Not allowed to create role {config.role_name}, trying fallback roles")
                raise StrategyFailure(strategy, "iam:CreateRole denied", denied=True) from e
            else:
                err = classify_client_error(e, f"create_role {config.role_name}")
                logger.warning(f"Role creation failed, trying fallback roles: {err}")
                raise StrategyFailure(strategy, str(err)) from e

        document = templates.permission_policy(config.template_values(), config.policy_template_path)
        policy_arn, policy_created, warnings = self._policies.reconcile(
            config.role_name, config.policy_name, document
        )
        return RoleHandle(
            name=config.role_name,
            arn=role["Arn"],
            source=RoleSource.CREATED,
            created=created,
            policy_arn=policy_arn,
            policy_created=policy_created,
            warnings=warnings,
        )

    def use_fallback_role(self, config: PipelineConfig, role_name: str) -> Optional[RoleHandle]:
        role = _probe_role(self._iam, role_name, f"fallback-role {role_name}")
        if role is None:
            logger.info(f"Fallback role {role_name} not found")
            return None
        logger.info(f"Using fallback role: {role_name}")
        return RoleHandle(name=role_name, arn=role["Arn"], source=RoleSource.FALLBACK)


__all__ = ["RoleResolver", "RoleStrategy"]

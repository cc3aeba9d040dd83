# facerec_deploy/services/config_resolver.py
from __future__ import annotations

import logging
import os
from typing import List, Mapping, Optional

from botocore.exceptions import BotoCoreError, ClientError

from facerec_deploy.Keywords import DEFAULT_REGION
from facerec_deploy.errors import ConfigError
from facerec_deploy.models.config import PipelineConfig

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "m346-facerec"
DEFAULT_FALLBACK_ROLES = ["LabRole", "lambda-execution-role"]


def resolve_region(env: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if env is None else env
    return env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION") or DEFAULT_REGION


def resolve_account_id(sts_client) -> str:
    """Caller's account id. Anything short of a real id means no usable credentials."""
    try:
        account_id = sts_client.get_caller_identity().get("Account")
    except (ClientError, BotoCoreError) as e:
        raise ConfigError(
            f"AWS credentials missing or invalid (sts get-caller-identity failed): {e}"
        ) from e
    if not account_id or account_id == "None":
        raise ConfigError("AWS credentials missing: sts get-caller-identity returned no account id")
    return str(account_id)


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from e


def _names(raw: Optional[str]) -> List[str]:
    if raw is None:
        return list(DEFAULT_FALLBACK_ROLES)
    return [n.strip() for n in raw.split(",") if n.strip()]


def resolve_config(sts_client, env: Optional[Mapping[str, str]] = None) -> PipelineConfig:
    """
    Build the configuration record for one run.

    The account id lookup is the only remote call and happens first, so a
    missing credential aborts before any other name is derived.
    """
    env = os.environ if env is None else env
    account_id = resolve_account_id(sts_client)

    region = resolve_region(env)
    prefix = env.get("PROJECT_PREFIX") or DEFAULT_PREFIX

    config = PipelineConfig(
        region=region,
        prefix=prefix,
        account_id=account_id,
        # bucket names are global, the account id keeps them unique
        in_bucket=env.get("IN_BUCKET") or f"{prefix}-{account_id}-in",
        out_bucket=env.get("OUT_BUCKET") or f"{prefix}-{account_id}-out",
        lambda_name=env.get("LAMBDA_NAME") or f"{prefix}-lambda",
        role_name=env.get("ROLE_NAME") or f"{prefix}-lambda-role",
        policy_name=env.get("POLICY_NAME") or f"{prefix}-lambda-policy",
        statement_id=env.get("STATEMENT_ID") or f"{prefix}-s3invoke",
        notification_id=env.get("NOTIFICATION_ID") or f"{prefix}-objectcreated",
        fallback_role_names=_names(env.get("FALLBACK_ROLE_NAMES")),
        runtime=env.get("LAMBDA_RUNTIME") or "dotnet8",
        handler=env.get("LAMBDA_HANDLER")
        or "FaceRecognitionLambda::FaceRecognitionLambda.Function::FunctionHandler",
        timeout=_int(env, "LAMBDA_TIMEOUT", 30),
        memory_size=_int(env, "LAMBDA_MEMORY", 256),
        settle_seconds=_float(env, "IAM_SETTLE_SECONDS", 5.0),
        trust_policy_path=env.get("TRUST_POLICY_PATH") or None,
        policy_template_path=env.get("POLICY_TEMPLATE_PATH") or None,
    )

    logger.info(
        "Configuration: region=%s account=%s in=%s out=%s lambda=%s role=%s policy=%s",
        config.region, config.account_id, config.in_bucket, config.out_bucket,
        config.lambda_name, config.role_name, config.policy_name,
    )
    return config


__all__ = ["resolve_config", "resolve_region", "resolve_account_id"]

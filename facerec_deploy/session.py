# facerec_deploy/session.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

import boto3


@dataclass
class AwsClients:
    """The four control-plane clients a run needs, sharing one session."""
    s3: Any
    iam: Any
    lambda_: Any
    sts: Any


def create_clients(
    *,
    profile: Optional[str] = None,
    region: Optional[str] = None,
    session_factory: Callable[..., boto3.Session] = boto3.Session,
) -> AwsClients:
    session_kwargs = {}
    if profile:
        session_kwargs["profile_name"] = profile
    if region:
        session_kwargs["region_name"] = region

    session = session_factory(**session_kwargs)
    return AwsClients(
        s3=session.client("s3"),
        iam=session.client("iam"),
        lambda_=session.client("lambda"),
        sts=session.client("sts"),
    )


__all__ = ["AwsClients", "create_clients"]

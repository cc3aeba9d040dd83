# facerec_deploy/services/policy_manager.py
from __future__ import annotations

import logging
from typing import Optional, Tuple

from botocore.exceptions import ClientError

from facerec_deploy.errors import (
    classify_client_error,
    is_access_denied,
    is_already_exists,
    is_not_found,
)
from facerec_deploy.models.IAM import PolicyVersionSet

logger = logging.getLogger(__name__)


def _denied_or_fatal(e: ClientError, context: str):
    err = classify_client_error(e, context)
    if is_access_denied(e):
        return err
    raise err from e


class PolicyManager:
    """Customer-managed permission policy for the execution role."""

    def __init__(self, iam_client) -> None:
        self._iam = iam_client

    def find_policy_arn(self, policy_name: str) -> Optional[str]:
        paginator = self._iam.get_paginator("list_policies")
        for page in paginator.paginate(Scope="Local"):
            for item in page.get("Policies", []):
                if item.get("PolicyName") == policy_name:
                    return item["Arn"]
        return None

    def rotate_and_publish(self, policy_arn: str, document: str) -> str:
        """
        Publish ``document`` as the new default version.

        Deletes the oldest non-default version first when the version quota
        would otherwise be exceeded.
        """
        response = self._iam.list_policy_versions(PolicyArn=policy_arn)
        versions = PolicyVersionSet.from_aws(response.get("Versions", []))

        evict = versions.plan_rotation()
        if evict is not None:
            logger.info(f"Deleting oldest policy version {evict.version_id} of {policy_arn}")
            try:
                self._iam.delete_policy_version(PolicyArn=policy_arn, VersionId=evict.version_id)
            except ClientError as e:
                # gone already is fine, the slot is free either way
                if not is_not_found(e):
                    raise
            versions.evict(evict.version_id)

        created = self._iam.create_policy_version(
            PolicyArn=policy_arn,
            PolicyDocument=document,
            SetAsDefault=True,
        )
        version_id = created["PolicyVersion"]["VersionId"]
        logger.info(f"Published policy version {version_id} as default")
        return version_id

    def ensure_policy(self, policy_name: str, document: str) -> Tuple[str, bool]:
        """Create the policy or publish a new default version. Returns (arn, created)."""
        policy_arn = self.find_policy_arn(policy_name)
        if policy_arn is None:
            try:
                response = self._iam.create_policy(PolicyName=policy_name, PolicyDocument=document)
                logger.info(f"Created IAM policy: {policy_name}")
                return response["Policy"]["Arn"], True
            except ClientError as e:
                if not is_already_exists(e):
                    raise
                policy_arn = self.find_policy_arn(policy_name)
                if policy_arn is None:
                    raise

        logger.info(f"IAM policy exists: {policy_name}, publishing new version")
        self.rotate_and_publish(policy_arn, document)
        return policy_arn, False

    def ensure_attached(self, role_name: str, policy_arn: str) -> bool:
        """Attach the policy unless it already is. Returns True when an attach call was made."""
        paginator = self._iam.get_paginator("list_attached_role_policies")
        for page in paginator.paginate(RoleName=role_name):
            for attached in page.get("AttachedPolicies", []):
                if attached.get("PolicyArn") == policy_arn:
                    logger.info(f"Policy already attached to role {role_name}")
                    return False

        self._iam.attach_role_policy(RoleName=role_name, PolicyArn=policy_arn)
        logger.info(f"Attached {policy_arn} -> {role_name}")
        return True

    def reconcile(self, role_name: str, policy_name: str, document: str):
        """
        Policy create/rotate plus attachment for a freshly created role.

        Returns (policy_arn or None, policy_created, warnings). Access denied
        is downgraded to a warning; the role may already carry enough
        permissions.
        """
        warnings = []
        try:
            policy_arn, created = self.ensure_policy(policy_name, document)
        except ClientError as e:
            err = _denied_or_fatal(e, f"policy {policy_name}")
            logger.warning(f"Could not create or update policy {policy_name}: {err}")
            warnings.append(str(err))
            return None, False, warnings

        try:
            self.ensure_attached(role_name, policy_arn)
        except ClientError as e:
            err = _denied_or_fatal(e, f"attach {policy_name} to {role_name}")
            logger.warning(f"Could not attach policy to role {role_name}: {err}")
            warnings.append(str(err))

        return policy_arn, created, warnings


__all__ = ["PolicyManager"]

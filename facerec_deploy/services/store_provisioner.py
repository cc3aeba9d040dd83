# facerec_deploy/services/store_provisioner.py
from __future__ import annotations

import logging

from botocore.exceptions import ClientError

from facerec_deploy.Keywords import StepStatus
from facerec_deploy.errors import classify_client_error, is_already_exists
from facerec_deploy.models.result import StepOutcome
from facerec_deploy.utils.s3_handler import S3Handler

logger = logging.getLogger(__name__)


class StoreProvisioner:
    """Create-if-absent for the inbound and outbound buckets."""

    def __init__(self, s3_handler: S3Handler) -> None:
        self._s3 = s3_handler

    def ensure_store(self, name: str) -> StepOutcome:
        if self._s3.bucket_exists(name):
            logger.info(f"Bucket already exists: {name}")
            return StepOutcome("stores", name, StepStatus.NOOP, "bucket already exists")

        try:
            self._s3.create_bucket(name)
        except ClientError as e:
            if not is_already_exists(e):
                raise classify_client_error(e, f"create_bucket {name}") from e
            # created between probe and create by an earlier, interrupted run
            logger.info(f"Bucket {name} already owned by this account")
            return StepOutcome("stores", name, StepStatus.ABSORBED, "bucket already owned by you")

        try:
            self._s3.enable_versioning(name)
        except ClientError as e:
            raise classify_client_error(e, f"put_bucket_versioning {name}") from e

        logger.info(f"Bucket created: {name}")
        return StepOutcome("stores", name, StepStatus.CREATED, "bucket created with versioning")


__all__ = ["StoreProvisioner"]

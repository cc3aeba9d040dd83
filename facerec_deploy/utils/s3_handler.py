import json
import logging
from typing import Any, Dict, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError, WaiterError

from facerec_deploy.Keywords import DEFAULT_REGION
from facerec_deploy.errors import (
    ProviderError,
    classify_client_error,
    error_code,
    is_not_found,
)

logger = logging.getLogger(__name__)


class S3Handler:
    def __init__(self, region_name: str = DEFAULT_REGION, client=None):
        self.region_name = region_name
        self.s3 = client or boto3.client("s3", region_name=region_name)

    def bucket_exists(self, bucket: str) -> bool:
        """Non-mutating existence probe. A bucket owned by someone else is an error."""
        try:
            self.s3.head_bucket(Bucket=bucket)
            return True
        except ClientError as e:
            if is_not_found(e):
                return False
            if error_code(e) in ("403", "AccessDenied"):
                raise ProviderError(
                    f"Bucket {bucket} exists but is not accessible (name taken by another account?)"
                ) from e
            raise classify_client_error(e, f"head_bucket {bucket}") from e

    def create_bucket(self, bucket: str):
        """Create a bucket in this handler's region."""
        kwargs: Dict[str, Any] = {"Bucket": bucket}
        # us-east-1 rejects an explicit LocationConstraint, every other region needs one
        if self.region_name != DEFAULT_REGION:
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region_name}
        logger.info(f"Creating bucket {bucket} in {self.region_name}")
        return self.s3.create_bucket(**kwargs)

    def enable_versioning(self, bucket: str):
        return self.s3.put_bucket_versioning(
            Bucket=bucket,
            VersioningConfiguration={"Status": "Enabled"},
        )

    def get_notification_configuration(self, bucket: str) -> Dict[str, Any]:
        try:
            response = self.s3.get_bucket_notification_configuration(Bucket=bucket)
        except ClientError as e:
            raise classify_client_error(e, f"get_bucket_notification_configuration {bucket}") from e
        response.pop("ResponseMetadata", None)
        return response

    def put_notification_configuration(self, bucket: str, configuration: Dict[str, Any]):
        """Replace the bucket's whole notification configuration."""
        try:
            return self.s3.put_bucket_notification_configuration(
                Bucket=bucket,
                NotificationConfiguration=configuration,
            )
        except ClientError as e:
            raise classify_client_error(e, f"put_bucket_notification_configuration {bucket}") from e

    def upload_file(self, local_path: str, bucket: str, key: str, content_type: Optional[str] = None):
        extra = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self.s3.upload_file(Filename=str(local_path), Bucket=bucket, Key=key, ExtraArgs=extra)
            logger.info("Uploaded %s to s3://%s/%s", local_path, bucket, key)
        except ClientError as e:
            logger.exception("Failed to upload file %s to %s/%s", local_path, bucket, key)
            raise classify_client_error(e, f"upload {key}") from e
        except S3UploadFailedError as e:
            # the managed transfer wraps the underlying ClientError
            logger.exception("Failed to upload file %s to %s/%s", local_path, bucket, key)
            raise ProviderError(f"upload s3://{bucket}/{key} failed: {e}") from e

    def wait_for_object(self, bucket: str, key: str, timeout: int = 60, delay: int = 2) -> None:
        waiter = self.s3.get_waiter("object_exists")
        try:
            waiter.wait(
                Bucket=bucket,
                Key=key,
                WaiterConfig={"Delay": delay, "MaxAttempts": max(1, timeout // max(delay, 1))},
            )
        except WaiterError as e:
            raise ProviderError(f"s3://{bucket}/{key} did not appear within {timeout}s") from e

    def get_json(self, bucket: str, key: str):
        """Downloads and returns a JSON object from S3, or None if the key is missing."""
        try:
            response = self.s3.get_object(Bucket=bucket, Key=key)
            data = json.loads(response["Body"].read().decode("utf-8"))
            logger.info(f"Downloaded s3://{bucket}/{key}")
            return data
        except ClientError as e:
            if error_code(e) == "NoSuchKey":
                logger.warning(f"Object not found: s3://{bucket}/{key}")
                return None
            raise classify_client_error(e, f"get_object {key}") from e

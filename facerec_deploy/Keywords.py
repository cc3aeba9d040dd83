from enum import Enum


class StepStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    NOOP = "noop"
    ABSORBED = "absorbed"
    WARNING = "warning"
    FAILED = "failed"


class FunctionState(str, Enum):
    ABSENT = "Absent"
    CREATING = "Creating"
    UPDATING = "Updating"
    ACTIVE = "Active"
    FAILED = "Failed"

    @classmethod
    def from_aws(cls, value: str) -> "FunctionState":
        if value == "Active":
            return cls.ACTIVE
        if value == "Failed":
            return cls.FAILED
        # Pending only occurs while a new function is being set up
        if value == "Pending":
            return cls.CREATING
        # Inactive functions are reactivated by the next update
        return cls.UPDATING


class RoleSource(str, Enum):
    EXISTING = "existing"
    CREATED = "created"
    FALLBACK = "fallback"


DEFAULT_REGION = "us-east-1"
OBJECT_CREATED_EVENTS = ["s3:ObjectCreated:*"]
S3_PRINCIPAL = "s3.amazonaws.com"
INVOKE_ACTION = "lambda:InvokeFunction"
POLICY_VERSION_QUOTA = 5

import io
import os
import sys
import zipfile

import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

from facerec_deploy.models.config import PipelineConfig  # noqa: E402
from facerec_deploy.session import create_clients  # noqa: E402

ACCOUNT_ID = "123456789012"  # moto's default account
FAST_WAITER = {"Delay": 1, "MaxAttempts": 3}


def client_error(code: str, message: str = "boom", operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def make_config(**overrides) -> PipelineConfig:
    values = dict(
        region="us-east-1",
        prefix="t",
        account_id=ACCOUNT_ID,
        in_bucket="t-in",
        out_bucket="t-out",
        lambda_name="t-lambda",
        role_name="t-lambda-role",
        policy_name="t-lambda-policy",
        statement_id="t-s3invoke",
        notification_id="t-objectcreated",
        fallback_role_names=["LabRole", "lambda-execution-role"],
        settle_seconds=0,
    )
    values.update(overrides)
    return PipelineConfig(**values)


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake credentials so nothing can ever reach a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    for key in ("AWS_PROFILE", "AWS_REGION", "PROJECT_PREFIX", "IN_BUCKET", "OUT_BUCKET",
                "LAMBDA_NAME", "ROLE_NAME", "POLICY_NAME", "FALLBACK_ROLE_NAMES"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def lambda_zip(tmp_path):
    path = tmp_path / "lambda.zip"
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as z:
        z.writestr("FaceRecognitionLambda.dll", b"not really a dll")
    path.write_bytes(buf.getvalue())
    return path


@pytest.fixture
def env():
    return {"AWS_REGION": "us-east-1", "PROJECT_PREFIX": "test-facerec", "IAM_SETTLE_SECONDS": "0"}


@pytest.fixture
def aws():
    with mock_aws():
        yield create_clients(region="us-east-1")


@pytest.fixture
def aws_eu():
    with mock_aws():
        yield create_clients(region="eu-central-1")


@pytest.fixture
def sleeps():
    calls = []
    return calls


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append

import json
from datetime import datetime, timedelta, timezone

import pytest

from facerec_deploy.Keywords import RoleSource
from facerec_deploy.errors import NoUsableRoleError, ProviderError
from facerec_deploy.services.role_resolver import RoleResolver

from conftest import client_error, make_config


# -------- fakes --------

class FakePaginator:
    def __init__(self, pages):
        self._pages = pages

    def paginate(self, **kwargs):
        for p in self._pages(**kwargs):
            yield p


class FakeIAM:
    """Just enough IAM to drive the resolver; errors are injected per operation."""

    def __init__(self, roles=(), errors=None):
        self.roles = {name: f"arn:aws:iam::123456789012:role/{name}" for name in roles}
        self.policies = {}      # name -> arn
        self.versions = {}      # arn -> list of dicts
        self.attached = {}      # role -> set of arns
        self.errors = errors or {}
        self.calls = []
        self._tick = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def _maybe_fail(self, op):
        self.calls.append(op)
        if op in self.errors:
            raise self.errors[op]

    def get_role(self, RoleName):
        self._maybe_fail("get_role")
        if RoleName not in self.roles:
            raise client_error("NoSuchEntity", f"role {RoleName} not found", "GetRole")
        return {"Role": {"RoleName": RoleName, "Arn": self.roles[RoleName]}}

    def create_role(self, RoleName, AssumeRolePolicyDocument, **kwargs):
        self._maybe_fail("create_role")
        assert json.loads(AssumeRolePolicyDocument)["Statement"][0]["Principal"]["Service"] == "lambda.amazonaws.com"
        self.roles[RoleName] = f"arn:aws:iam::123456789012:role/{RoleName}"
        return {"Role": {"RoleName": RoleName, "Arn": self.roles[RoleName]}}

    def get_paginator(self, name):
        if name == "list_policies":
            return FakePaginator(lambda **kw: [{"Policies": [
                {"PolicyName": n, "Arn": a} for n, a in self.policies.items()
            ]}])
        if name == "list_attached_role_policies":
            return FakePaginator(lambda RoleName, **kw: [{"AttachedPolicies": [
                {"PolicyArn": a} for a in self.attached.get(RoleName, set())
            ]}])
        raise AssertionError(f"unexpected paginator {name}")

    def _new_version(self, arn):
        self._tick += timedelta(seconds=1)
        versions = self.versions.setdefault(arn, [])
        for v in versions:
            v["IsDefaultVersion"] = False
        vid = f"v{len(versions) + 1 + sum(1 for c in self.calls if c == 'delete_policy_version')}"
        versions.append({"VersionId": vid, "IsDefaultVersion": True, "CreateDate": self._tick})
        return vid

    def create_policy(self, PolicyName, PolicyDocument):
        self._maybe_fail("create_policy")
        self.document = json.loads(PolicyDocument)
        arn = f"arn:aws:iam::123456789012:policy/{PolicyName}"
        self.policies[PolicyName] = arn
        self._new_version(arn)
        return {"Policy": {"Arn": arn}}

    def list_policy_versions(self, PolicyArn):
        self._maybe_fail("list_policy_versions")
        return {"Versions": [dict(v) for v in self.versions[PolicyArn]]}

    def delete_policy_version(self, PolicyArn, VersionId):
        self._maybe_fail("delete_policy_version")
        self.versions[PolicyArn] = [v for v in self.versions[PolicyArn] if v["VersionId"] != VersionId]

    def create_policy_version(self, PolicyArn, PolicyDocument, SetAsDefault):
        self._maybe_fail("create_policy_version")
        assert SetAsDefault is True
        if len(self.versions[PolicyArn]) >= 5:
            raise client_error("LimitExceeded", "too many versions", "CreatePolicyVersion")
        return {"PolicyVersion": {"VersionId": self._new_version(PolicyArn)}}

    def attach_role_policy(self, RoleName, PolicyArn):
        self._maybe_fail("attach_role_policy")
        self.attached.setdefault(RoleName, set()).add(PolicyArn)


# -------- tests --------

def test_existing_role_wins_over_creation_and_fallback():
    iam = FakeIAM(roles=["t-lambda-role", "LabRole"])
    role = RoleResolver(iam, make_config()).resolve()

    assert role.source is RoleSource.EXISTING
    assert role.arn.endswith("role/t-lambda-role")
    assert "create_role" not in iam.calls
    # a pre-existing role is trusted as-is
    assert "create_policy" not in iam.calls and "attach_role_policy" not in iam.calls


def test_creates_role_policy_and_attaches():
    iam = FakeIAM()
    role = RoleResolver(iam, make_config()).resolve()

    assert role.source is RoleSource.CREATED
    assert role.created and role.policy_created
    assert role.policy_arn == iam.policies["t-lambda-policy"]
    assert iam.attached["t-lambda-role"] == {role.policy_arn}
    assert len(iam.versions[role.policy_arn]) == 1
    resources = [s["Resource"] for s in iam.document["Statement"]]
    assert "arn:aws:s3:::t-in/*" in resources and "arn:aws:s3:::t-out/*" in resources
    assert not role.warnings


def test_existing_policy_gets_new_default_version_with_rotation():
    iam = FakeIAM()
    arn = "arn:aws:iam::123456789012:policy/t-lambda-policy"
    iam.policies["t-lambda-policy"] = arn
    for _ in range(5):
        iam._new_version(arn)

    role = RoleResolver(iam, make_config()).resolve()

    assert role.policy_created is False
    assert "delete_policy_version" in iam.calls
    versions = iam.versions[arn]
    assert len(versions) == 5
    assert versions[-1]["IsDefaultVersion"] is True
    assert [v["VersionId"] for v in versions].count("v1") == 0


def test_create_denied_falls_back_in_order():
    iam = FakeIAM(
        roles=["LabRole", "lambda-execution-role"],
        errors={"create_role": client_error("AccessDenied", "not allowed", "CreateRole")},
    )
    role = RoleResolver(iam, make_config()).resolve()

    assert role.source is RoleSource.FALLBACK
    assert role.name == "LabRole"


def test_second_fallback_used_when_first_missing():
    iam = FakeIAM(
        roles=["lambda-execution-role"],
        errors={"create_role": client_error("AccessDenied", "not allowed", "CreateRole")},
    )
    assert RoleResolver(iam, make_config()).resolve().name == "lambda-execution-role"


def test_other_create_failure_also_falls_through():
    iam = FakeIAM(
        roles=["LabRole"],
        errors={"create_role": client_error("LimitExceeded", "too many roles", "CreateRole")},
    )
    role = RoleResolver(iam, make_config()).resolve()
    assert role.name == "LabRole"


def test_no_usable_role():
    iam = FakeIAM(errors={"create_role": client_error("AccessDenied", "not allowed", "CreateRole")})
    with pytest.raises(NoUsableRoleError) as exc:
        RoleResolver(iam, make_config()).resolve()

    message = str(exc.value)
    assert "iam:CreateRole denied" in message
    assert "ROLE_NAME" in message
    assert len(exc.value.failures) == 4


def test_attach_denied_is_a_warning_not_fatal():
    iam = FakeIAM(errors={"attach_role_policy": client_error("AccessDenied", "nope", "AttachRolePolicy")})
    role = RoleResolver(iam, make_config()).resolve()

    assert role.source is RoleSource.CREATED
    assert len(role.warnings) == 1 and "AccessDenied" in role.warnings[0]


def test_policy_create_denied_keeps_the_new_role():
    iam = FakeIAM(errors={"create_policy": client_error("AccessDenied", "nope", "CreatePolicy")})
    role = RoleResolver(iam, make_config()).resolve()

    assert role.created is True
    assert role.policy_arn is None
    assert role.warnings


def test_policy_provider_error_is_fatal():
    iam = FakeIAM(errors={"create_policy": client_error("MalformedPolicyDocument", "bad", "CreatePolicy")})
    with pytest.raises(ProviderError):
        RoleResolver(iam, make_config()).resolve()


def test_role_created_concurrently_is_reused():
    iam = FakeIAM()
    iam.roles["t-lambda-role"] = "arn:aws:iam::123456789012:role/t-lambda-role"
    resolver = RoleResolver(iam, make_config())
    # skip the probe to simulate a race between probe and create
    iam.errors["create_role"] = client_error("EntityAlreadyExists", "exists", "CreateRole")
    role = resolver.resolve([resolver.create_role_and_policy])

    assert role.source is RoleSource.CREATED
    assert role.created is False


def test_custom_strategy_list_first_success_wins():
    iam = FakeIAM(roles=["LabRole"])
    resolver = RoleResolver(iam, make_config())
    calls = []

    def never(config):
        calls.append("never")
        return None

    role = resolver.resolve([never, lambda c: resolver.use_fallback_role(c, "LabRole"), resolver.use_existing_role])
    assert calls == ["never"]
    assert role.name == "LabRole"


def test_denied_probe_moves_on():
    iam = FakeIAM(errors={"get_role": client_error("AccessDenied", "no", "GetRole")})
    role = RoleResolver(iam, make_config(fallback_role_names=[])).resolve()
    assert role.source is RoleSource.CREATED

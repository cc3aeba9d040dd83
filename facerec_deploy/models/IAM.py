# facerec_deploy/models/IAM.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from facerec_deploy.Keywords import RoleSource, POLICY_VERSION_QUOTA


# The execution role the function will run under
@dataclass
class RoleHandle:
    name: str
    arn: str
    source: RoleSource
    created: bool = False
    policy_arn: Optional[str] = None
    policy_created: bool = False
    warnings: List[str] = field(default_factory=list)


# One entry of ListPolicyVersions
@dataclass(frozen=True)
class PolicyVersion:
    version_id: str           # "v1", "v2", ...
    is_default: bool
    create_date: datetime

    @classmethod
    def from_aws(cls, item: dict) -> "PolicyVersion":
        return cls(
            version_id=item["VersionId"],
            is_default=bool(item.get("IsDefaultVersion", False)),
            create_date=item.get("CreateDate") or datetime.fromtimestamp(0, timezone.utc),
        )

    @property
    def number(self) -> int:
        digits = self.version_id.lstrip("v")
        return int(digits) if digits.isdigit() else 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PolicyVersionSet:
    """
    Bounded collection of policy versions.

    IAM keeps at most ``quota`` versions per managed policy, one of them the
    default. Before a new default can be added the oldest non-default version
    has to go once ``quota - 1`` non-default versions exist.
    """

    def __init__(
        self,
        versions: Iterable[PolicyVersion] = (),
        *,
        quota: int = POLICY_VERSION_QUOTA,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.quota = quota
        self._clock = clock
        self._versions: List[PolicyVersion] = list(versions)

    @classmethod
    def from_aws(cls, items: Iterable[dict], **kwargs) -> "PolicyVersionSet":
        return cls((PolicyVersion.from_aws(i) for i in items), **kwargs)

    def __len__(self) -> int:
        return len(self._versions)

    @property
    def versions(self) -> List[PolicyVersion]:
        return list(self._versions)

    @property
    def default(self) -> Optional[PolicyVersion]:
        for v in self._versions:
            if v.is_default:
                return v
        return None

    def non_default(self) -> List[PolicyVersion]:
        return sorted(
            (v for v in self._versions if not v.is_default),
            key=lambda v: (_as_utc(v.create_date), v.number),
        )

    def plan_rotation(self) -> Optional[PolicyVersion]:
        """Return the version that must be deleted before a new one fits, if any."""
        candidates = self.non_default()
        if len(candidates) >= self.quota - 1:
            return candidates[0]
        return None

    def evict(self, version_id: str) -> None:
        self._versions = [v for v in self._versions if v.version_id != version_id]

    def record_new_default(self, version_id: Optional[str] = None) -> PolicyVersion:
        """Append a new default version, demoting the previous default."""
        if len(self._versions) >= self.quota:
            raise ValueError(f"policy already holds {len(self._versions)} versions (quota {self.quota})")
        if version_id is None:
            version_id = f"v{max((v.number for v in self._versions), default=0) + 1}"
        self._versions = [
            PolicyVersion(v.version_id, False, v.create_date) for v in self._versions
        ]
        new = PolicyVersion(version_id, True, self._clock())
        self._versions.append(new)
        return new


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


__all__ = ["RoleHandle", "PolicyVersion", "PolicyVersionSet"]

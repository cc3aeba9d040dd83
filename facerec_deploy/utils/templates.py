# facerec_deploy/utils/templates.py
from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any, Dict, Mapping, Optional

from facerec_deploy.errors import ConfigError

TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates"
TRUST_POLICY_FILE = "iam-trust-policy.json"
PERMISSION_POLICY_FILE = "lambda-policy.template.json"


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read policy document {path}: {e}") from e


def render(text: str, values: Mapping[str, str]) -> str:
    """Substitute ${NAME} placeholders; unknown placeholders are left untouched."""
    return Template(text).safe_substitute(values)


def load_document(text: str, source: str) -> Dict[str, Any]:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Policy document {source} is not valid JSON: {e}") from e


def trust_policy(path: Optional[str] = None) -> str:
    """Trust-policy document (static) as a compact JSON string."""
    p = Path(path) if path else TEMPLATE_DIR / TRUST_POLICY_FILE
    return json.dumps(load_document(_read(p), str(p)))


def permission_policy(values: Mapping[str, str], path: Optional[str] = None) -> str:
    """Permission policy with the bucket/region placeholders filled in."""
    p = Path(path) if path else TEMPLATE_DIR / PERMISSION_POLICY_FILE
    rendered = render(_read(p), values)
    return json.dumps(load_document(rendered, str(p)))


__all__ = ["render", "trust_policy", "permission_policy", "TEMPLATE_DIR"]

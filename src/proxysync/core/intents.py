"""
Load-balancer intents from YAML.

    name: web
    url_map: global/urlMaps/web-um
    certificates:
      - global/sslCertificates/web-a
      - global/sslCertificates/web-b
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import yaml

from .errors import ProxySyncError
from .resources import LoadBalancerIntent


class IntentError(ProxySyncError):
    """Raised when an intent document is missing or malformed."""


def intent_from_dict(data: Dict[str, Any], *, source: str = "<dict>") -> LoadBalancerIntent:
    if not isinstance(data, dict):
        raise IntentError(f"Top-level YAML must be a mapping: {source}")

    name = str(data.get("name") or "").strip()
    if not name:
        raise IntentError(f"Intent 'name' is required: {source}")

    url_map = data.get("url_map")
    if url_map is not None and not isinstance(url_map, str):
        raise IntentError(f"Intent 'url_map' must be a string: {source}")

    certs = data.get("certificates") or []
    if not isinstance(certs, list) or not all(isinstance(c, str) and c.strip() for c in certs):
        raise IntentError(f"Intent 'certificates' must be a list of non-empty strings: {source}")
    cleaned: List[str] = [c.strip() for c in certs]

    return LoadBalancerIntent(name=name, url_map=(url_map or "").strip() or None, certificates=tuple(cleaned))


def load_intent(path: str) -> LoadBalancerIntent:
    p = Path(path)
    if not p.is_file():
        raise IntentError(f"Intent file not found: {path}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise IntentError(f"Invalid YAML in {path}: {exc}") from exc
    return intent_from_dict(data, source=str(path))

"""Endpoint registry: loads endpoints.yaml and provides typed descriptors.

Single source of truth for the probeable API surface.
The probe executor, the API docs listing and the CLI all consume this.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from apiwatch.config import settings

logger = logging.getLogger(__name__)

# Only idempotent, side-effect-free methods are probed automatically
PROBE_METHODS = ("GET",)


# ── Data models ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EndpointDescriptor:
    """A single registered route."""

    path: str
    method: str = "GET"
    category: str = "other"
    requires_auth: bool = False
    key: str = ""
    description: str = ""

    @property
    def probeable(self) -> bool:
        return self.method in PROBE_METHODS

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "path": self.path,
            "method": self.method,
            "category": self.category,
            "requires_auth": self.requires_auth,
            "description": self.description,
        }


# ── Registry ─────────────────────────────────────────────────────────────────


class EndpointRegistry:
    """Loads and caches endpoint descriptors from endpoints.yaml."""

    def __init__(
        self,
        path: Path | None = None,
        endpoints: list[EndpointDescriptor] | None = None,
    ) -> None:
        self._path = Path(path or settings.registry_path)
        # An explicit descriptor list skips the YAML file entirely
        self._endpoints: list[EndpointDescriptor] = list(endpoints or [])
        self._loaded = endpoints is not None

    def load(self, force: bool = False) -> list[EndpointDescriptor]:
        """Parse endpoints.yaml and return the descriptor list."""
        if self._loaded and not force:
            return self._endpoints

        self._endpoints = []
        if not self._path.exists():
            logger.warning("Registry file not found: %s", self._path)
            self._loaded = True
            return self._endpoints

        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except Exception as e:
            logger.error("Failed to parse %s: %s", self._path, e)
            self._loaded = True
            return self._endpoints

        for category, entries in (raw.get("categories") or {}).items():
            for key, entry in (entries or {}).items():
                try:
                    self._endpoints.append(_parse_endpoint(category, key, entry))
                except Exception as e:
                    logger.warning("Skipping malformed endpoint %s.%s: %s", category, key, e)

        self._loaded = True
        logger.info("Loaded %d endpoints from registry", len(self._endpoints))
        return self._endpoints

    @property
    def endpoints(self) -> list[EndpointDescriptor]:
        return self.load()

    def all_endpoints(self) -> list[EndpointDescriptor]:
        return list(self.endpoints)

    def list_get_endpoints(self) -> list[EndpointDescriptor]:
        """Descriptors eligible for automatic probing."""
        return [e for e in self.endpoints if e.probeable]

    def categories(self) -> list[str]:
        return sorted({e.category for e in self.endpoints})

    def by_category(self, category: str) -> list[EndpointDescriptor]:
        return [e for e in self.endpoints if e.category == category]

    def grouped(self) -> dict[str, list[EndpointDescriptor]]:
        groups: dict[str, list[EndpointDescriptor]] = {}
        for e in self.endpoints:
            groups.setdefault(e.category, []).append(e)
        return groups

    def find(self, path: str, method: str) -> EndpointDescriptor | None:
        method = method.upper()
        return next(
            (e for e in self.endpoints if e.path == path and e.method == method),
            None,
        )

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        """Serialize the registry grouped by category for the API."""
        return {cat: [e.to_dict() for e in items] for cat, items in self.grouped().items()}

    def reload(self) -> list[EndpointDescriptor]:
        """Force reload from disk."""
        return self.load(force=True)


# ── Parsers ──────────────────────────────────────────────────────────────────


def _parse_endpoint(category: str, key: str, raw: dict[str, Any]) -> EndpointDescriptor:
    path = raw["path"]
    if not isinstance(path, str) or not path.startswith("/"):
        raise ValueError(f"path must start with '/': {path!r}")
    return EndpointDescriptor(
        path=path,
        method=str(raw.get("method", "GET")).upper(),
        category=category,
        requires_auth=bool(raw.get("requires_auth", False)),
        key=key,
        description=raw.get("description", ""),
    )

"""Cache key schema for articles.

Key format: {prefix}:{kind}:{digest}

Where:
- prefix: ``settings.CACHE_KEY_PREFIX`` ("articles" by default)
- kind: "detail" (single article) or "list" (paginated query result)
- digest: SHA-256 of the canonical JSON of the query parameters

Parameters are serialised with keys sorted by name, so two logically
identical queries map to the same key whatever order their fields were
built in.  Keeping list keys under their own kind lets writers drop the
whole list namespace with one pattern (``articles:list:*``) without
touching detail entries.
"""
from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel

from articles_api.config import settings

KeyKind = Literal["detail", "list"]


def canonical_json(params: Mapping[str, Any] | BaseModel) -> str:
    """Serialise *params* deterministically (sorted keys, no whitespace)."""
    if isinstance(params, BaseModel):
        params = params.model_dump(mode="json")
    return json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)


def derive_key(kind: KeyKind, params: Mapping[str, Any] | BaseModel, prefix: str | None = None) -> str:
    digest = hashlib.sha256(canonical_json(params).encode("utf-8")).hexdigest()
    return f"{prefix or settings.CACHE_KEY_PREFIX}:{kind}:{digest}"


class ArticleCacheKeys:
    """Key generator for the article detail and list namespaces."""

    def __init__(self, prefix: str | None = None) -> None:
        self.prefix = prefix or settings.CACHE_KEY_PREFIX

    def detail(self, article_id: Any) -> str:
        """Key for a single article, identified by its id."""
        return derive_key("detail", {"id": str(article_id)}, self.prefix)

    def list(self, query: Mapping[str, Any] | BaseModel) -> str:
        """Key for one page of a filtered article listing."""
        return derive_key("list", query, self.prefix)

    @property
    def list_pattern(self) -> str:
        """Glob matching every list key (Redis SCAN MATCH syntax)."""
        return f"{self.prefix}:list:*"

    def parse(self, key: str) -> dict[str, str] | None:
        """Split *key* into prefix / kind / digest, or None if it is not ours."""
        parts = key.split(":")
        if len(parts) != 3 or parts[0] != self.prefix or parts[1] not in ("detail", "list"):
            return None
        return {"prefix": parts[0], "kind": parts[1], "digest": parts[2]}

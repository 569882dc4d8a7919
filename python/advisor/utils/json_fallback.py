# python/advisor/utils/json_fallback.py
"""
Ordered fallback chain for loosely structured JSON coming back from the inference service.

Each tier is a standalone decode attempt that returns a ParseAttempt instead of raising,
so the chain stays explicit and every tier can be tested on its own:
  - bare_array:       the whole text is a JSON array of items
  - wrapper:          the whole text is an object holding the items under one key
  - bracket_extract:  the text between the first '[' and the last ']' is an array
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ParseAttempt:
    """Outcome of one tier"""
    tier: str
    ok: bool
    items: List[Any] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def yielded(self) -> bool:
        return self.ok and bool(self.items)


Tier = Callable[[str], ParseAttempt]


def _coerce_items(tier: str, data: list, model_cls: Type[BaseModel]) -> ParseAttempt:
    items = []
    skipped = 0
    for entry in data:
        if not isinstance(entry, dict):
            skipped += 1
            continue
        try:
            items.append(model_cls.model_validate(entry))
        except ValidationError:
            skipped += 1
    if skipped:
        logger.debug(f"{tier}: skipped {skipped} malformed item(s)")
    return ParseAttempt(tier=tier, ok=True, items=items)


def parse_bare_array(raw: str, model_cls: Type[BaseModel]) -> ParseAttempt:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        return ParseAttempt(tier="bare_array", ok=False, error=str(e))
    if not isinstance(data, list):
        return ParseAttempt(tier="bare_array", ok=False, error=f"expected array, got {type(data).__name__}")
    return _coerce_items("bare_array", data, model_cls)


def parse_wrapper(raw: str, key: str, model_cls: Type[BaseModel]) -> ParseAttempt:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        return ParseAttempt(tier="wrapper", ok=False, error=str(e))
    if not isinstance(data, dict):
        return ParseAttempt(tier="wrapper", ok=False, error=f"expected object, got {type(data).__name__}")
    inner = data.get(key)
    if inner is None:
        return ParseAttempt(tier="wrapper", ok=True, items=[])
    if not isinstance(inner, list):
        return ParseAttempt(tier="wrapper", ok=False, error=f"'{key}' is not an array")
    return _coerce_items("wrapper", inner, model_cls)


def parse_bracket_extract(raw: str, model_cls: Type[BaseModel]) -> ParseAttempt:
    """Recover an array embedded in prose by cutting from the first '[' to the last ']'"""
    start = raw.find("[")
    end = raw.rfind("]")
    if start < 0 or end <= start:
        return ParseAttempt(tier="bracket_extract", ok=False, error="no bracketed array found")
    attempt = parse_bare_array(raw[start:end + 1], model_cls)
    attempt.tier = "bracket_extract"
    return attempt


def run_chain(raw: str, tiers: Sequence[Tier]) -> ParseAttempt:
    """
    Run tiers in order and return the first attempt that succeeds and yields items.
    When none does, the last attempt is returned (its items are empty or it failed).
    """
    last = ParseAttempt(tier="none", ok=False, error="no tiers configured")
    for tier in tiers:
        last = tier(raw)
        if last.yielded:
            return last
        logger.debug(f"JSON tier {last.tier} gave nothing (ok={last.ok}, error={last.error})")
    return last

# python/advisor/utils/payload_codec.py
"""
Raw-preserving codec for recommendation payloads.

The stored document is `{"schema_version": 1, "courses": [...], "scholarships": ...}`.
Only `courses` is ever rewritten; every other top-level value is carried as the exact
source text so a decode -> edit courses -> encode cycle leaves it byte for byte intact.
"""

from __future__ import annotations

import json
import re
from typing import Dict

from pydantic import ValidationError

from ..models import CourseRecommendation, RecommendationPayload, PAYLOAD_SCHEMA_VERSION

_WS = re.compile(r"[ \t\n\r]*")
_decoder = json.JSONDecoder()


class PayloadDecodeError(ValueError):
    """Stored payload is not a JSON object of the expected shape"""


def split_top_level(text: str) -> Dict[str, str]:
    """
    Map each top-level key of a JSON object to the raw source text of its value.
    Walks the object with the stdlib scanner rather than regex scraping.
    """
    idx = _WS.match(text, 0).end()
    if text[idx:idx + 1] != "{":
        raise PayloadDecodeError("payload is not a JSON object")
    idx = _WS.match(text, idx + 1).end()

    raw: Dict[str, str] = {}
    if text[idx:idx + 1] == "}":
        end = idx + 1
    else:
        while True:
            if text[idx:idx + 1] != '"':
                raise PayloadDecodeError(f"expected object key at offset {idx}")
            try:
                key, idx = json.decoder.scanstring(text, idx + 1)
                idx = _WS.match(text, idx).end()
                if text[idx:idx + 1] != ":":
                    raise PayloadDecodeError(f"expected ':' at offset {idx}")
                idx = _WS.match(text, idx + 1).end()
                _, value_end = _decoder.raw_decode(text, idx)
            except json.JSONDecodeError as e:
                raise PayloadDecodeError(str(e)) from e
            raw[key] = text[idx:value_end]

            idx = _WS.match(text, value_end).end()
            ch = text[idx:idx + 1]
            if ch == ",":
                idx = _WS.match(text, idx + 1).end()
                continue
            if ch == "}":
                end = idx + 1
                break
            raise PayloadDecodeError(f"expected ',' or '}}' at offset {idx}")

    if _WS.match(text, end).end() != len(text):
        raise PayloadDecodeError("trailing data after payload object")
    return raw


def decode_payload(text: str) -> RecommendationPayload:
    raw = split_top_level(text)

    courses = []
    if "courses" in raw:
        data = json.loads(raw["courses"])
        if data is not None:
            if not isinstance(data, list):
                raise PayloadDecodeError("'courses' is not an array")
            try:
                courses = [CourseRecommendation.model_validate(c) for c in data]
            except ValidationError as e:
                raise PayloadDecodeError(f"invalid course entry: {e}") from e

    version = PAYLOAD_SCHEMA_VERSION
    if "schema_version" in raw:
        try:
            version = int(json.loads(raw["schema_version"]))
        except (TypeError, ValueError):
            raise PayloadDecodeError("'schema_version' is not an integer")

    extras = {k: v for k, v in raw.items() if k not in ("courses", "scholarships", "schema_version")}
    return RecommendationPayload(
        schema_version=version,
        courses=courses,
        scholarships_raw=raw.get("scholarships"),
        extras_raw=extras,
    )


def encode_payload(payload: RecommendationPayload) -> str:
    parts = [
        f'"schema_version":{int(payload.schema_version)}',
        '"courses":' + json.dumps(
            [c.model_dump(mode="json") for c in payload.courses],
            ensure_ascii=False,
            separators=(",", ":"),
        ),
    ]
    for key, value in payload.extras_raw.items():
        parts.append(f"{json.dumps(key, ensure_ascii=False)}:{value}")
    if payload.scholarships_raw is not None:
        parts.append('"scholarships":' + payload.scholarships_raw)
    return "{" + ",".join(parts) + "}"

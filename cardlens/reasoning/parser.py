"""Extraction and validation of the JSON object returned by the reasoning capability."""

import json
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..core.types import CardMetadata
from ..utils.error_handler import SchemaValidationError

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)

_decoder = json.JSONDecoder()


def _first_object(text: str, errors: List[json.JSONDecodeError]) -> Optional[Dict[str, Any]]:
    """Decode from each ``{`` in turn and return the first JSON object found."""
    start = text.find("{")
    while start != -1:
        try:
            value, _ = _decoder.raw_decode(text, start)
        except json.JSONDecodeError as e:
            errors.append(e)
        else:
            if isinstance(value, dict):
                return value
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Locate the first well-formed JSON object in a free-form model response.

    Fenced blocks are searched first, then the whole response. Braces in
    surrounding prose are skipped when they do not start valid JSON.

    Raises:
        SchemaValidationError: If the response is empty or holds no object
    """
    if not text or not text.strip():
        raise SchemaValidationError("Empty response from reasoning capability")

    errors: List[json.JSONDecodeError] = []
    for fenced in _FENCED_BLOCK.finditer(text):
        found = _first_object(fenced.group(1), errors)
        if found is not None:
            return found

    found = _first_object(text, errors)
    if found is not None:
        return found

    if errors:
        first = errors[0]
        raise SchemaValidationError(
            f"Malformed JSON in reasoning response: {first.msg}",
            details={"position": first.pos, "attempts": len(errors)},
        )
    raise SchemaValidationError(
        "No JSON object found in reasoning response",
        details={"response_preview": text[:200]},
    )


def parse_metadata(text: str) -> CardMetadata:
    """
    Parse and validate a reasoning response into ``CardMetadata``.

    Raises:
        SchemaValidationError: On malformed JSON, missing fields or
            out-of-range confidences
    """
    data = extract_json_object(text)
    try:
        return CardMetadata.model_validate(data)
    except ValidationError as e:
        raise SchemaValidationError(
            "Reasoning response does not match the metadata schema",
            details={
                "errors": [
                    {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                    for err in e.errors()
                ]
            },
        ) from e

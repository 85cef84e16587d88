"""Text helpers: truncation and lenient JSON extraction from LLM output."""

from __future__ import annotations

import json
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..contracts import ParseError

ModelT = TypeVar("ModelT", bound=BaseModel)


def truncate(text: str, max_length: int) -> str:
    """Return the first ``max_length`` characters, adding ``...`` if cut."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring of ``text``.

    Braces are depth-counted without regard to JSON string quoting, so a
    string value containing an unbalanced brace defeats the extraction.
    """
    start = -1
    depth = 0
    for index, char in enumerate(text):
        if char == "{":
            if start == -1:
                start = index
            depth += 1
        elif char == "}":
            if start == -1:
                continue
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def parse_json_model(text: str, model: Type[ModelT]) -> ModelT:
    """Parse ``text`` into ``model``, falling back to brace extraction.

    Raises:
        ParseError: If neither the full text nor the extracted object
            validates as ``model``.
    """
    try:
        return model.model_validate_json(text)
    except ValidationError:
        pass

    candidate = extract_json_object(text)
    if candidate is not None:
        try:
            return model.model_validate(json.loads(candidate))
        except (ValueError, ValidationError):
            pass

    raise ParseError(f"no valid JSON object for {model.__name__} in response")

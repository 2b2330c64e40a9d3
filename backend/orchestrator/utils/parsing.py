# /orchestrator/utils/parsing.py

import re
import json
import copy
import logging
from typing import Any, Optional, Type
from pydantic import BaseModel, ValidationError

# Completion output is never trusted to be well-formed. Every call site that
# expects JSON goes through parse_or_default so they all share one contract:
# a value of the expected shape, or the caller's default.

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _strip_code_fence(text: str) -> str:
    match = _CODE_FENCE_RE.match(text.strip())
    return match.group(1) if match else text.strip()


def parse_or_default(raw: Any, default: Any, model: Optional[Type[BaseModel]] = None) -> Any:
    """
    Parses `raw` as JSON and returns it, or a copy of `default` on any failure.

    - `raw` may be a JSON string (optionally wrapped in a ``` fence) or an
      already-decoded dict/list.
    - When `default` is a dict, a non-dict result counts as a failure; the same
      applies to lists.
    - When `model` is given, the parsed value is validated into that pydantic
      model and the model instance is returned.
    """
    try:
        if isinstance(raw, (dict, list)):
            parsed = raw
        elif isinstance(raw, str) and raw.strip():
            parsed = json.loads(_strip_code_fence(raw))
        else:
            return copy.deepcopy(default)

        if isinstance(default, dict) and not isinstance(parsed, dict):
            raise ValueError(f"expected an object, got {type(parsed).__name__}")
        if isinstance(default, list) and not isinstance(parsed, list):
            raise ValueError(f"expected an array, got {type(parsed).__name__}")

        if model is not None:
            return model.model_validate(parsed)
        return parsed
    except (ValueError, TypeError, ValidationError) as e:
        logger.debug(f"Falling back to default after unparseable completion output: {e}")
        return copy.deepcopy(default)

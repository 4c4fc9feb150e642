"""Substitute `?` placeholders with escaped literals."""

import re
from typing import Any, Optional, Sequence

from ..errors import ParameterCountError
from .escape import escape


_PLACEHOLDER = re.compile(r"\?")


def format_sql(template: str, params: Optional[Sequence[Any]] = None) -> str:
    """Replace each `?` in template, left to right, with the next escaped parameter.

    A list parameter fills a single placeholder with a comma-separated list.
    Raises ParameterCountError when placeholders and parameters don't match.
    """
    remaining = list(params) if params is not None else []
    position = 0

    def substitute(_match):
        nonlocal position
        if position >= len(remaining):
            raise ParameterCountError(
                f"ZERO parameters given for placeholder {position + 1} in: {template}"
            )
        value = remaining[position]
        position += 1
        return escape(value)

    sql = _PLACEHOLDER.sub(substitute, template)
    if position < len(remaining):
        raise ParameterCountError(
            f"too many parameters given: expected {position}, got {len(remaining)}"
        )
    return sql

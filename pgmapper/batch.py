"""Split a flat list of SQL fragments and parameter lists into statements.

Callers write batches as one flat list, e.g.::

    [
        "select * from posts where id = ?;", [1],        # a list ends the statement
        "select title", "from posts where id = 2;",      # so does a trailing ';'
        "select count(*) from posts;",
    ]
"""

from typing import Any, Optional, Sequence

from pydantic import BaseModel


class Statement(BaseModel):
    """Fragments of one statement and the parameters for its placeholders."""

    fragments: list[str]
    params: Optional[list[Any]] = None

    def to_sql(self) -> str:
        """Render through raw SQL mode: fragments joined by spaces, then formatted."""
        from .query import QueryBuilder
        parts: list[Any] = list(self.fragments)
        if self.params is not None:
            parts.append(self.params)
        return QueryBuilder().sql(*parts).to_sql()


def _is_params(item: Any) -> bool:
    return isinstance(item, (list, tuple))


def split_statements(items: Sequence[str | list | tuple]) -> list[Statement]:
    """Group items into statements.

    A statement ends at a parameter list, at the last item, or at a string
    ending with ';' that is not followed by a parameter list.
    """
    statements: list[Statement] = []
    fragments: list[str] = []
    count = len(items)
    for index, item in enumerate(items):
        if _is_params(item):
            statements.append(Statement(fragments=fragments, params=list(item)))
            fragments = []
            continue
        fragments.append(item)
        is_last = index + 1 >= count
        closes = item.endswith(";") and (is_last or not _is_params(items[index + 1]))
        if is_last or closes:
            statements.append(Statement(fragments=fragments))
            fragments = []
    return statements

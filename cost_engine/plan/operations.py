"""Operation sets derived from caller queries.

A query reaches the cost engine either as a loosely-typed mapping (the shape a
document store planner hands over) or as SQL text. Both are reduced once to an
``OperationSet`` so that cost models never re-inspect the raw query.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Tuple

import sqlglot
from sqlglot import exp
from sqlglot import errors as sqlglot_errors

logger = logging.getLogger(__name__)

# Recognized query keys per operation; the first present key wins.
OPERATION_KEYS: Dict[str, Tuple[str, ...]] = {
    "filter": ("filter", "where"),
    "join": ("join",),
    "sort": ("sort", "orderBy", "order_by"),
    "aggregate": ("aggregate", "group", "groupBy", "group_by"),
    "project": ("project", "select"),
    "limit": ("limit",),
    "skip": ("skip", "offset"),
}


@dataclass(frozen=True)
class OperationSet:
    """Operations a query performs. Scan is always present."""

    scan: bool = True
    filter: bool = False
    join: bool = False
    sort: bool = False
    aggregate: bool = False
    project: bool = False
    limit: bool = False
    skip: bool = False

    def active(self) -> List[str]:
        """Return the names of the operations that are set, in declaration order."""
        names = []
        for item in fields(self):
            if getattr(self, item.name):
                names.append(item.name)
        return names

    def to_dict(self) -> Dict[str, bool]:
        result = {}
        for item in fields(self):
            result[item.name] = getattr(self, item.name)
        return result


@dataclass(frozen=True)
class ParsedQuery:
    """A query together with the operation set derived from it."""

    original: Any
    operations: OperationSet
    collection: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        original = self.original
        if not isinstance(original, (str, Mapping)) and original is not None:
            original = repr(original)
        return {
            "original": original,
            "operations": self.operations.to_dict(),
            "collection": self.collection,
        }


def _is_present(value: Any) -> bool:
    """Decide whether a query key carries an operation."""
    if value is None or value is False:
        return False
    if value is True:
        return True
    if isinstance(value, (int, float)):
        return value > 0
    if isinstance(value, (str, Mapping, Sequence)):
        return len(value) > 0
    return bool(value)


def parse_query(query: Any) -> ParsedQuery:
    """Reduce a caller query to its operation set.

    Args:
        query: Mapping with recognized keys, SQL text, or an already parsed query

    Returns:
        Parsed query. Anything unrecognizable is treated as a plain scan.
    """
    if isinstance(query, ParsedQuery):
        return query

    if isinstance(query, str):
        return parse_sql(query)

    if not isinstance(query, Mapping):
        logger.debug(f"Unrecognized query type {type(query).__name__}, assuming scan")
        return ParsedQuery(original=query, operations=OperationSet())

    flags = {}
    for operation, keys in OPERATION_KEYS.items():
        present = False
        for key in keys:
            if _is_present(query.get(key)):
                present = True
                break
        flags[operation] = present

    collection = query.get("collection")
    if not isinstance(collection, str) or not collection:
        collection = None

    return ParsedQuery(
        original=query,
        operations=OperationSet(scan=True, **flags),
        collection=collection,
    )


def parse_sql(sql: str, dialect: str = "postgres") -> ParsedQuery:
    """Derive an operation set from SQL text.

    Args:
        sql: SQL statement
        dialect: sqlglot dialect used for parsing

    Returns:
        Parsed query. Unparseable SQL is treated as a plain scan.
    """
    try:
        tree = sqlglot.parse_one(sql, dialect=dialect)
    except (sqlglot_errors.ParseError, sqlglot_errors.TokenError) as e:
        logger.debug(f"Could not parse SQL, assuming scan: {e}")
        return ParsedQuery(original=sql, operations=OperationSet())

    if tree is None:
        return ParsedQuery(original=sql, operations=OperationSet())

    has_aggregate = tree.find(exp.Group) is not None or tree.find(exp.AggFunc) is not None

    project = False
    if isinstance(tree, exp.Select):
        project = True
        for expression in tree.expressions:
            if isinstance(expression, exp.Star):
                project = False
                break

    operations = OperationSet(
        scan=True,
        filter=tree.find(exp.Where) is not None,
        join=tree.find(exp.Join) is not None,
        sort=tree.find(exp.Order) is not None,
        aggregate=has_aggregate,
        project=project,
        limit=tree.args.get("limit") is not None,
        skip=tree.args.get("offset") is not None,
    )

    collection = None
    table = tree.find(exp.Table)
    if table is not None and table.name:
        collection = table.name

    return ParsedQuery(original=sql, operations=operations, collection=collection)

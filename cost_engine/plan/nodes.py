"""Execution plan nodes handed over by the external planner."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..errors import ValidationError


def _pick(data: Mapping, *keys: str) -> Any:
    """Return the first non-None value among ``keys``."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


@dataclass(frozen=True)
class PlanNode:
    """One operator in an execution plan.

    The cost core only reads nodes; it never rewrites them.
    """

    type: str
    row_count: Optional[int] = None
    collection: Optional[str] = None
    index_type: Optional[str] = None
    memory_type: Optional[str] = None
    row_size: Optional[int] = None
    children: Tuple["PlanNode", ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping) -> "PlanNode":
        """Build a node tree from a mapping.

        Both snake_case and camelCase keys are accepted. A missing ``type``
        becomes ``"unknown"``.

        Raises:
            ValidationError: If ``data`` or one of its children is not a mapping
        """
        if not isinstance(data, Mapping):
            raise ValidationError(f"Plan node must be a mapping, got {type(data).__name__}")

        children = []
        for child in data.get("children") or []:
            children.append(cls.from_dict(child))

        return cls(
            type=str(data.get("type") or "unknown"),
            row_count=_pick(data, "row_count", "rowCount"),
            collection=data.get("collection"),
            index_type=_pick(data, "index_type", "indexType"),
            memory_type=_pick(data, "memory_type", "memoryType"),
            row_size=_pick(data, "row_size", "rowSize"),
            children=tuple(children),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type}
        if self.row_count is not None:
            result["row_count"] = self.row_count
        if self.collection is not None:
            result["collection"] = self.collection
        if self.index_type is not None:
            result["index_type"] = self.index_type
        if self.memory_type is not None:
            result["memory_type"] = self.memory_type
        if self.row_size is not None:
            result["row_size"] = self.row_size
        if self.children:
            result["children"] = [child.to_dict() for child in self.children]
        return result


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered root nodes of an execution plan."""

    nodes: Tuple[PlanNode, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping) -> "ExecutionPlan":
        """Build a plan from ``{"nodes": [...]}`` or a single node mapping.

        A mapping with neither ``nodes`` nor ``type`` yields an empty plan.
        """
        if not isinstance(data, Mapping):
            raise ValidationError(f"Plan must be a mapping, got {type(data).__name__}")

        if "nodes" in data:
            raw_nodes = data.get("nodes") or []
            if isinstance(raw_nodes, Mapping) or isinstance(raw_nodes, str):
                raise ValidationError("Plan 'nodes' must be a list")
            return cls(nodes=tuple(PlanNode.from_dict(node) for node in raw_nodes))

        if "type" in data:
            return cls(nodes=(PlanNode.from_dict(data),))

        return cls()

    def iter_nodes(self) -> Iterator[PlanNode]:
        """Yield every node, parents before children."""
        stack: List[PlanNode] = list(reversed(self.nodes))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def node_count(self) -> int:
        return sum(1 for _ in self.iter_nodes())

    def to_dict(self) -> Dict[str, Any]:
        return {"nodes": [node.to_dict() for node in self.nodes]}


def as_plan(plan: Any) -> ExecutionPlan:
    """Coerce the accepted plan shapes into an ``ExecutionPlan``.

    Accepts an ``ExecutionPlan``, a single ``PlanNode``, a list of nodes or
    node mappings, or a plan mapping. ``None`` is an empty plan.

    Raises:
        ValidationError: If the shape is not recognized
    """
    if plan is None:
        return ExecutionPlan()
    if isinstance(plan, ExecutionPlan):
        return plan
    if isinstance(plan, PlanNode):
        return ExecutionPlan(nodes=(plan,))
    if isinstance(plan, Mapping):
        return ExecutionPlan.from_dict(plan)
    if isinstance(plan, (list, tuple)):
        nodes = []
        for node in plan:
            if isinstance(node, PlanNode):
                nodes.append(node)
            else:
                nodes.append(PlanNode.from_dict(node))
        return ExecutionPlan(nodes=tuple(nodes))
    raise ValidationError(f"Unsupported plan type: {type(plan).__name__}")

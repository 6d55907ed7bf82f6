"""Errors raised while evaluating a node graph.

Every error aborts the evaluation pass it was raised from. The offending node
(and parameter or output name, where there is one) is kept on the exception
so callers can point the user at it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ._model import NodeId


class NodeRunError(Exception):
    """Base class for errors raised during an evaluation pass."""

    def __init__(self, message: str, *, node_id: NodeId | None = None) -> None:
        self.node_id = node_id
        super().__init__(message)


class UnknownNodeError(NodeRunError):
    """Raised when a node id is not part of the graph."""

    def __init__(self, node_id: NodeId) -> None:
        super().__init__(f"Node '{node_id}' is not part of the graph", node_id=node_id)


class UnknownOperationError(NodeRunError):
    """Raised when a node's operation name has no registered definition."""

    def __init__(self, op_name: str, *, node_id: NodeId | None = None) -> None:
        self.op_name = op_name
        super().__init__(f"Node definition not found for '{op_name}'", node_id=node_id)


class MissingExternalParameterError(NodeRunError):
    """Raised when an external input has no value in the parameter store."""

    def __init__(self, node_id: NodeId, param_name: str) -> None:
        self.param_name = param_name
        super().__init__(
            f"Could not retrieve external parameter named '{param_name}' from node '{node_id}'",
            node_id=node_id,
        )


class MissingCachedOutputError(NodeRunError):
    """Raised when a connection names an output its producer did not produce."""

    def __init__(self, node_id: NodeId, producer_id: NodeId, output_name: str) -> None:
        self.producer_id = producer_id
        self.output_name = output_name
        super().__init__(
            f"Node '{node_id}' expects output '{output_name}' from node '{producer_id}', "
            "which did not produce it",
            node_id=node_id,
        )


class GizmoHookMissingError(NodeRunError):
    """Raised when an operation claims gizmo support but lacks a hook."""

    def __init__(self, op_name: str, hook: str, *, node_id: NodeId | None = None) -> None:
        self.op_name = op_name
        self.hook = hook
        super().__init__(f"Operation '{op_name}' has gizmos but no '{hook}' hook", node_id=node_id)


class OperationContractError(NodeRunError):
    """Raised when an operation or one of its hooks returns the wrong shape."""


class OperationFailedError(NodeRunError):
    """Raised when an operation or hook raises an unexpected exception."""


class MissingReturnOutputError(NodeRunError):
    """Raised when the target's return output is absent from its outputs."""

    def __init__(self, node_id: NodeId, output_name: str) -> None:
        self.output_name = output_name
        super().__init__(
            f"Target node '{node_id}' did not produce its return output '{output_name}'",
            node_id=node_id,
        )


class CycleDetectedError(NodeRunError):
    """Raised when a node is reached again while it is still being evaluated."""

    def __init__(self, path: Sequence[NodeId]) -> None:
        self.path = tuple(path)
        super().__init__(
            f"Cycle detected in graph: {' -> '.join(self.path)}",
            node_id=self.path[-1] if self.path else None,
        )

"""Mutable state threaded through one evaluation pass."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from noderun._gizmos import gizmos_enabled

if TYPE_CHECKING:
    from noderun._gizmos import GizmoConfig
    from noderun._model import NodeId
    from noderun._operations import OperationRegistry
    from noderun._params import ExternalParameterValues


@dataclass(slots=True)
class InterpreterContext:
    """State of a single pass, owned by the `run_graph` call driving it.

    Attributes:
        external_param_values: The caller's parameter store. Gizmo hooks may
            write into it, so it is handed back in the result.
        operations: Registry used to resolve each node's operation.
        target_node: The node whose result the pass computes.
        gizmo_config: Which gizmo hooks run for the target.
        outputs_cache: Outputs of every node run so far. Entries are never
            replaced within a pass.
        gizmo_outputs: Gizmos returned by the target's `post_gizmo` hook.
        visiting: Nodes whose inputs are being resolved, in call order.

    """

    external_param_values: ExternalParameterValues
    operations: OperationRegistry
    target_node: NodeId
    gizmo_config: GizmoConfig
    outputs_cache: dict[NodeId, dict[str, Any]] = field(default_factory=dict)
    gizmo_outputs: list[Any] = field(default_factory=list)
    visiting: list[NodeId] = field(default_factory=list)

    @property
    def gizmos_enabled(self) -> bool:
        return gizmos_enabled(self.gizmo_config)

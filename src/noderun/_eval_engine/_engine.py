"""Entry point of an evaluation pass."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from noderun._errors import MissingReturnOutputError, OperationContractError
from noderun._gizmos import IgnoreGizmos, gizmos_enabled

from ._context import InterpreterContext
from ._executor import run_node

if TYPE_CHECKING:
    from noderun._gizmos import GizmoConfig
    from noderun._model import Graph, NodeId
    from noderun._operations import OperationRegistry
    from noderun._params import ExternalParameterValues

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Renderable:
    """The value a pass returns for its target node.

    Rendering is up to the caller, the evaluator only guarantees that there is
    a value.
    """

    value: Any

    @classmethod
    def from_value(cls, value: Any) -> Renderable:
        """Wrap an output value.

        Raises:
            OperationContractError: If the value is None.

        """
        if value is None:
            msg = "Cannot render a None value"
            raise OperationContractError(msg)
        return cls(value=value)


@dataclass(frozen=True, slots=True)
class ProgramResult:
    """Result of one evaluation pass.

    Attributes:
        renderable: The target's return output, or None if the target declares
            no return output.
        updated_gizmos: Gizmos returned by the target's `post_gizmo` hook. None
            if gizmos were disabled for the pass.
        updated_values: The parameter store given to `run_graph`, including any
            changes made during the pass.

    """

    renderable: Renderable | None
    updated_gizmos: list[Any] | None
    updated_values: ExternalParameterValues


def run_graph(
    graph: Graph,
    target_node: NodeId,
    external_param_values: ExternalParameterValues,
    operations: OperationRegistry,
    gizmo_config: GizmoConfig | None = None,
) -> ProgramResult:
    """Evaluate the nodes needed by `target_node` and return its result.

    Only ancestors of the target run, each at most once. The graph is expected
    to be acyclic; a cycle reached from the target raises CycleDetectedError.

    Dependencies are resolved recursively, two frames per level, so a chain
    longer than about half of `sys.getrecursionlimit()` raises RecursionError.
    Raise the limit before evaluating very deep graphs.

    Args:
        graph: The graph to evaluate.
        target_node: The node whose result is computed.
        external_param_values: Values of external inputs. The same object is
            returned in the result.
        operations: Registry used to resolve node operations.
        gizmo_config: Which gizmo hooks run for the target. Defaults to
            IgnoreGizmos.

    Returns:
        ProgramResult with the target's renderable, gizmos and parameters.

    Raises:
        NodeRunError: If any node of the pass fails. No partial result is
            returned.

    Example:
        >>> result = run_graph(graph, "d", values, registry, RunGizmosOut())
        >>> result.renderable.value
        42
        >>> result.updated_gizmos
        []

    """
    if gizmo_config is None:
        gizmo_config = IgnoreGizmos()

    graph.get_node(target_node)

    context = InterpreterContext(
        external_param_values=external_param_values,
        operations=operations,
        target_node=target_node,
        gizmo_config=gizmo_config,
    )

    logger.debug("Starting pass for %s (%d nodes in graph)", target_node, len(graph))

    run_node(graph, context, target_node)

    outputs = context.outputs_cache.get(target_node)
    if outputs is None:
        msg = f"Target node '{target_node}' should be in the outputs cache"
        raise RuntimeError(msg)

    logger.debug("Pass for %s ran %d nodes", target_node, len(context.outputs_cache))

    return_value = graph.nodes[target_node].return_value
    renderable: Renderable | None = None
    if return_value is not None:
        if return_value not in outputs:
            raise MissingReturnOutputError(target_node, return_value)
        try:
            renderable = Renderable.from_value(outputs[return_value])
        except OperationContractError as e:
            e.node_id = target_node
            raise

    return ProgramResult(
        renderable=renderable,
        updated_gizmos=context.gizmo_outputs if gizmos_enabled(gizmo_config) else None,
        updated_values=external_param_values,
    )

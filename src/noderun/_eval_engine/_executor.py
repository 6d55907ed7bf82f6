"""Recursive, memoized execution of a single node and its dependencies."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from noderun._errors import (
    CycleDetectedError,
    GizmoHookMissingError,
    MissingCachedOutputError,
    MissingExternalParameterError,
    NodeRunError,
    OperationContractError,
    OperationFailedError,
    UnknownOperationError,
)
from noderun._gizmos import RunGizmosInOut
from noderun._model import Connection, External
from noderun._params import ExternalParameter

if TYPE_CHECKING:
    from collections.abc import Callable

    from noderun._model import Graph, Node, NodeId
    from noderun._operations import HookName, OperationDefinition

    from ._context import InterpreterContext

logger = logging.getLogger(__name__)


def _call_user_fn(node_id: NodeId, what: str, fn: Callable[..., Any], *args: Any) -> Any:
    """Call an operation or hook, tagging unexpected failures with the node."""
    try:
        return fn(*args)
    except (NodeRunError, RecursionError):
        raise
    except Exception as e:
        msg = f"{what} of node '{node_id}' failed: {e}"
        raise OperationFailedError(msg, node_id=node_id) from e


def _resolve_hook(node_def: OperationDefinition, hook: HookName, node_id: NodeId) -> Callable[..., Any]:
    try:
        return node_def.resolve_hook(hook)
    except GizmoHookMissingError as e:
        e.node_id = node_id
        raise


def _runs_gizmos(ctx: InterpreterContext, node_id: NodeId, node_def: OperationDefinition) -> bool:
    return ctx.gizmos_enabled and node_id == ctx.target_node and node_def.has_gizmo


def _is_gizmo_sequence(value: object) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, str | bytes)


def _build_input_map(graph: Graph, ctx: InterpreterContext, node_id: NodeId, node: Node) -> dict[str, Any]:
    """Resolve every input of a node, running producers that have not run yet."""
    input_map: dict[str, Any] = {}

    for param in node.inputs:
        match param.kind:
            case Connection(node=producer_id, param_name=output_name):
                if producer_id not in ctx.outputs_cache:
                    run_node(graph, ctx, producer_id)
                producer_outputs = ctx.outputs_cache[producer_id]
                if output_name not in producer_outputs:
                    raise MissingCachedOutputError(node_id, producer_id, output_name)
                input_map[param.name] = producer_outputs[output_name]
            case External():
                key = ExternalParameter(node_id, param.name)
                if key not in ctx.external_param_values:
                    raise MissingExternalParameterError(node_id, param.name)
                input_map[param.name] = ctx.external_param_values[key]
            case _:
                msg = f"Unknown dependency kind: {type(param.kind)}"
                raise TypeError(msg)

    return input_map


def run_node(graph: Graph, ctx: InterpreterContext, node_id: NodeId) -> None:
    """Ensure the outputs of `node_id` are in the cache.

    Dependencies are resolved depth-first. A node that feeds several consumers
    runs once; later consumers read its cached outputs.

    Args:
        graph: The graph being evaluated.
        ctx: State of the current pass.
        node_id: The node to run.

    Raises:
        NodeRunError: If the node or any of its dependencies cannot be run.

    """
    if node_id in ctx.outputs_cache:
        return

    if node_id in ctx.visiting:
        start = ctx.visiting.index(node_id)
        raise CycleDetectedError([*ctx.visiting[start:], node_id])

    node = graph.get_node(node_id)
    node_def = ctx.operations.node_def(node.op_name)
    if node_def is None:
        raise UnknownOperationError(node.op_name, node_id=node_id)

    ctx.visiting.append(node_id)
    try:
        input_map = _build_input_map(graph, ctx, node_id, node)
    finally:
        ctx.visiting.pop()

    runs_gizmos = _runs_gizmos(ctx, node_id, node_def)

    if runs_gizmos and isinstance(ctx.gizmo_config, RunGizmosInOut):
        pre_gizmo = _resolve_hook(node_def, "pre_gizmo", node_id)
        logger.debug("Running pre_gizmo of %s with %d gizmos", node_id, len(ctx.gizmo_config.gizmos))
        new_input_map = _call_user_fn(node_id, "pre_gizmo", pre_gizmo, input_map, list(ctx.gizmo_config.gizmos))
        if not isinstance(new_input_map, Mapping):
            msg = (
                f"pre_gizmo of node '{node_id}' should return an updated input mapping, "
                f"got {type(new_input_map).__name__}"
            )
            raise OperationContractError(msg, node_id=node_id)
        input_map = dict(new_input_map)

    logger.debug("Running %s (%s)", node_id, node.op_name)
    outputs = _call_user_fn(node_id, "Operation", node_def.op, input_map)
    if not isinstance(outputs, Mapping):
        msg = f"Operation '{node.op_name}' must return a mapping, got {type(outputs).__name__}"
        raise OperationContractError(msg, node_id=node_id)

    ctx.outputs_cache[node_id] = dict(outputs)

    if runs_gizmos:
        post_gizmo = _resolve_hook(node_def, "post_gizmo", node_id)
        gizmos = _call_user_fn(node_id, "post_gizmo", post_gizmo, ctx.outputs_cache[node_id])
        if not _is_gizmo_sequence(gizmos):
            msg = f"post_gizmo of node '{node_id}' should return a sequence of gizmos, got {type(gizmos).__name__}"
            raise OperationContractError(msg, node_id=node_id)
        # Only the target runs post_gizmo, its result replaces any previous one.
        ctx.gizmo_outputs[:] = list(gizmos)
        logger.debug("post_gizmo of %s returned %d gizmos", node_id, len(ctx.gizmo_outputs))

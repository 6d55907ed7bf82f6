"""Memoized evaluator for node graphs with gizmo hooks."""

__all__ = [
    "Connection",
    "CycleDetectedError",
    "DependencyKind",
    "External",
    "ExternalParameter",
    "ExternalParameterValues",
    "GizmoConfig",
    "GizmoHookMissingError",
    "Graph",
    "GraphFileError",
    "IgnoreGizmos",
    "InputParameter",
    "InterpreterContext",
    "MissingCachedOutputError",
    "MissingExternalParameterError",
    "MissingReturnOutputError",
    "Node",
    "NodeId",
    "NodeRunError",
    "Operation",
    "OperationContractError",
    "OperationDefinition",
    "OperationFailedError",
    "OperationRegistry",
    "ProgramResult",
    "Renderable",
    "RunGizmosInOut",
    "RunGizmosOut",
    "UnknownNodeError",
    "UnknownOperationError",
    "dump_parameters_to_toml",
    "export_graph_to_toml",
    "gizmos_enabled",
    "load_graph_from_toml",
    "load_parameters_from_toml",
    "load_registry",
    "run_graph",
    "run_node",
]

from ._errors import (
    CycleDetectedError,
    GizmoHookMissingError,
    MissingCachedOutputError,
    MissingExternalParameterError,
    MissingReturnOutputError,
    NodeRunError,
    OperationContractError,
    OperationFailedError,
    UnknownNodeError,
    UnknownOperationError,
)
from ._eval_engine import InterpreterContext, ProgramResult, Renderable, run_graph, run_node
from ._gizmos import GizmoConfig, IgnoreGizmos, RunGizmosInOut, RunGizmosOut, gizmos_enabled
from ._io import (
    GraphFileError,
    dump_parameters_to_toml,
    export_graph_to_toml,
    load_graph_from_toml,
    load_parameters_from_toml,
)
from ._model import Connection, DependencyKind, External, Graph, InputParameter, Node, NodeId
from ._operations import Operation, OperationDefinition, OperationRegistry, load_registry
from ._params import ExternalParameter, ExternalParameterValues

"""Evaluation engine module for noderun.

This module runs one evaluation pass over a node graph: it resolves the
dependencies of a target node depth-first, runs each required node once, and
applies the target's gizmo hooks.

Key types:
- InterpreterContext: Mutable state of a single pass
- ProgramResult: Renderable, gizmos and parameters returned by a pass
- Renderable: Wrapper around the target's return output
- run_graph: Run a pass rooted at a target node
- run_node: Ensure one node's outputs are cached
"""

from ._context import InterpreterContext
from ._engine import ProgramResult, Renderable, run_graph
from ._executor import run_node

__all__ = [
    "InterpreterContext",
    "ProgramResult",
    "Renderable",
    "run_graph",
    "run_node",
]

"""Gizmo configuration for an evaluation pass.

A gizmo is interactive state attached to the target node. Its operation may
rewrite its inputs from the gizmos of the previous round (`pre_gizmo`) and
derive new gizmos from its outputs (`post_gizmo`). Gizmo values are opaque to
the evaluator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class IgnoreGizmos:
    """Do not run any gizmo hook."""


@dataclass(slots=True, frozen=True)
class RunGizmosInOut:
    """Run `pre_gizmo` with the given gizmos, then `post_gizmo`."""

    gizmos: tuple[Any, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class RunGizmosOut:
    """Run only `post_gizmo`, there is no prior gizmo state."""


type GizmoConfig = IgnoreGizmos | RunGizmosInOut | RunGizmosOut


def gizmos_enabled(config: GizmoConfig) -> bool:
    """Check whether a configuration runs any gizmo hook."""
    return isinstance(config, RunGizmosInOut | RunGizmosOut)

"""Operation registry: maps operation names to their callables and hooks."""

from __future__ import annotations

import importlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from ._errors import GizmoHookMissingError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping, Sequence

    type OpFn = Callable[[dict[str, Any]], Mapping[str, Any]]
    type PreGizmoFn = Callable[[dict[str, Any], Sequence[Any]], Mapping[str, Any]]
    type PostGizmoFn = Callable[[dict[str, Any]], Sequence[Any]]

logger = logging.getLogger(__name__)

type HookName = Literal["pre_gizmo", "post_gizmo"]


@dataclass(slots=True, frozen=True)
class OperationDefinition:
    """Everything the evaluator needs to run one kind of node.

    Attributes:
        name: Name nodes refer to in their `op_name`.
        op: Main callable. Receives the input mapping and returns the outputs.
        has_gizmo: Whether the gizmo hooks run when this operation is the target.
        pre_gizmo: Receives the inputs and the previous gizmos, returns new inputs.
        post_gizmo: Receives the outputs, returns the new gizmos.

    """

    name: str
    op: OpFn
    has_gizmo: bool = False
    pre_gizmo: PreGizmoFn | None = None
    post_gizmo: PostGizmoFn | None = None

    def resolve_hook(self, hook: HookName) -> Callable[..., Any]:
        """Get a gizmo hook.

        Raises:
            GizmoHookMissingError: If the hook is not set.

        """
        fn = getattr(self, hook)
        if fn is None:
            raise GizmoHookMissingError(self.name, hook)
        return fn


class Operation(ABC):
    """Base class for operations written as classes.

    Subclasses set `name` (and `has_gizmo`) and implement `op`. Operations with
    gizmos also override `pre_gizmo` and `post_gizmo`.

    Example:
        >>> class Double(Operation):
        ...     name = "Double"
        ...
        ...     def op(self, inputs):
        ...         return {"out": inputs["x"] * 2}
        >>> registry = OperationRegistry()
        >>> registry.add(Double())

    """

    name: ClassVar[str]
    has_gizmo: ClassVar[bool] = False

    @abstractmethod
    def op(self, inputs: dict[str, Any]) -> Mapping[str, Any]: ...

    def to_definition(self) -> OperationDefinition:
        # Hooks are looked up by name: the base class defines neither.
        return OperationDefinition(
            name=self.name,
            op=self.op,
            has_gizmo=self.has_gizmo,
            pre_gizmo=getattr(self, "pre_gizmo", None),
            post_gizmo=getattr(self, "post_gizmo", None),
        )


class OperationRegistry:
    """Name-keyed table of operation definitions.

    Build it once at startup, then hand it to `run_graph`. New kinds of node
    are added by registering more operations, the evaluator does not change.
    """

    def __init__(self, definitions: Mapping[str, OperationDefinition] | None = None) -> None:
        self._definitions: dict[str, OperationDefinition] = dict(definitions or {})

    def node_def(self, op_name: str) -> OperationDefinition | None:
        """Get the definition of an operation, or None if it is not registered."""
        return self._definitions.get(op_name)

    def register(self, definition: OperationDefinition, *, replace_existing: bool = False) -> None:
        """Register an operation definition.

        Raises:
            KeyError: If an operation with the same name is registered and
                `replace_existing` is False.

        """
        if definition.name in self._definitions and not replace_existing:
            msg = f"Operation '{definition.name}' is already registered."
            raise KeyError(msg)
        self._definitions[definition.name] = definition
        logger.debug("Registered operation %s (gizmos: %s)", definition.name, definition.has_gizmo)

    def add(self, operation: Operation) -> None:
        """Register a class-based operation."""
        self.register(operation.to_definition())

    def operation(
        self,
        name: str | None = None,
        *,
        has_gizmo: bool = False,
    ) -> Callable[[OpFn], OpFn]:
        """Decorator to register a function as the main callable of an operation."""

        def decorator(func: OpFn) -> OpFn:
            if name is None:
                if not hasattr(func, "__name__") or not isinstance(func.__name__, str):
                    msg = "Function must have a valid name."
                    raise TypeError(msg)
                op_name = func.__name__
            else:
                op_name = name
            self.register(OperationDefinition(name=op_name, op=func, has_gizmo=has_gizmo))
            return func

        return decorator

    def pre_gizmo(self, name: str) -> Callable[[PreGizmoFn], PreGizmoFn]:
        """Decorator to attach a `pre_gizmo` hook to a registered operation."""

        def decorator(func: PreGizmoFn) -> PreGizmoFn:
            self._set_hook(name, "pre_gizmo", func)
            return func

        return decorator

    def post_gizmo(self, name: str) -> Callable[[PostGizmoFn], PostGizmoFn]:
        """Decorator to attach a `post_gizmo` hook to a registered operation."""

        def decorator(func: PostGizmoFn) -> PostGizmoFn:
            self._set_hook(name, "post_gizmo", func)
            return func

        return decorator

    def _set_hook(self, name: str, hook: HookName, func: Callable[..., Any]) -> None:
        definition = self._definitions.get(name)
        if definition is None:
            msg = f"Cannot attach '{hook}' to unregistered operation '{name}'."
            raise KeyError(msg)
        self._definitions[name] = replace(definition, **{hook: func})

    def __contains__(self, op_name: object) -> bool:
        return op_name in self._definitions

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)


def load_registry(module_path: str) -> OperationRegistry:
    """Load a registry from a module path (e.g., 'mypkg.ops:registry').

    Args:
        module_path: Module path in format 'module.path:variable_name'

    Returns:
        The OperationRegistry instance found at that path.

    """
    if ":" not in module_path:
        msg = "Module path must be in format 'module.path:variable_name'"
        raise ValueError(msg)

    module_name, registry_name = module_path.split(":", 1)
    module = importlib.import_module(module_name)
    registry = getattr(module, registry_name)

    if not isinstance(registry, OperationRegistry):
        msg = f"'{registry_name}' in module '{module_name}' is not an OperationRegistry instance"
        raise TypeError(msg)

    return registry

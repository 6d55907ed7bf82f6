"""Graph model: nodes, their inputs and how each input is fed."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._errors import UnknownNodeError

if TYPE_CHECKING:
    from collections.abc import Iterator

type NodeId = str


@dataclass(slots=True, frozen=True)
class Connection:
    """The input is fed by the output `param_name` of node `node`."""

    node: NodeId
    param_name: str


@dataclass(slots=True, frozen=True)
class External:
    """The input is set by the user.

    `promoted` marks inputs exposed upward for editing. It has no effect on
    evaluation.
    """

    promoted: bool = False


type DependencyKind = Connection | External


@dataclass(slots=True, frozen=True)
class InputParameter:
    name: str
    kind: DependencyKind


@dataclass(slots=True, frozen=True)
class Node:
    """A single computation step bound to a named operation.

    Attributes:
        op_name: Name resolved against the operation registry.
        inputs: Inputs in the order they are resolved.
        return_value: Output returned as the result of a pass when this node is
            the target. None if the node has no renderable output.

    """

    op_name: str
    inputs: tuple[InputParameter, ...] = ()
    return_value: str | None = None

    def get_input(self, name: str) -> InputParameter:
        """Get an input by name.

        Raises:
            KeyError: If the node has no input with that name.

        """
        for param in self.inputs:
            if param.name == name:
                return param
        raise KeyError(name)


@dataclass(slots=True, frozen=True)
class Graph:
    """An immutable collection of nodes keyed by id.

    The graph is expected to be acyclic. `validate` only reports dangling
    connections; cycles are detected when a pass reaches one.

    Example:
        >>> graph = Graph(
        ...     nodes={
        ...         "a": Node(op_name="Number", inputs=(InputParameter("value", External()),)),
        ...         "b": Node(
        ...             op_name="Double",
        ...             inputs=(InputParameter("x", Connection("a", "value")),),
        ...             return_value="out",
        ...         ),
        ...     },
        ... )
        >>> graph.ancestors("b")
        frozenset({'a'})

    """

    nodes: dict[NodeId, Node] = field(default_factory=dict)

    def get_node(self, node_id: NodeId) -> Node:
        """Get a node by id.

        Raises:
            UnknownNodeError: If no node has that id.

        """
        try:
            return self.nodes[node_id]
        except KeyError:
            raise UnknownNodeError(node_id) from None

    def dependencies(self, node_id: NodeId) -> frozenset[NodeId]:
        """Get the nodes feeding any input of `node_id` directly."""
        return frozenset(
            param.kind.node for param in self.get_node(node_id).inputs if isinstance(param.kind, Connection)
        )

    def ancestors(self, node_id: NodeId) -> frozenset[NodeId]:
        """Get every node `node_id` transitively depends on.

        Dangling connections are included as they are; they are not looked up.
        """
        visited: set[NodeId] = set()
        stack = list(self.dependencies(node_id))
        while stack:
            current = stack.pop()
            if current not in visited:
                visited.add(current)
                if current in self.nodes:
                    stack.extend(self.dependencies(current))
        return frozenset(visited)

    def external_parameters(self, node_id: NodeId | None = None) -> Iterator[tuple[NodeId, InputParameter]]:
        """Iterate over external inputs, of one node or of the whole graph."""
        node_ids = [node_id] if node_id is not None else list(self.nodes)
        for nid in node_ids:
            for param in self.get_node(nid).inputs:
                if isinstance(param.kind, External):
                    yield nid, param

    def validate(self) -> list[str]:
        """Validate the graph and return a list of error messages.

        Checks for:
        - Connections to nodes that are not in the graph
        - Duplicate input names on a node

        Returns:
            List of error messages. Empty list if the graph is valid.

        """
        errors: list[str] = []
        for node_id, node in self.nodes.items():
            seen: set[str] = set()
            for param in node.inputs:
                if param.name in seen:
                    errors.append(f"Node '{node_id}' has duplicate input '{param.name}'")
                seen.add(param.name)
                if isinstance(param.kind, Connection) and param.kind.node not in self.nodes:
                    errors.append(
                        f"Input '{param.name}' of node '{node_id}' is connected to missing node '{param.kind.node}'",
                    )
        return errors

    def __len__(self) -> int:
        """Return the number of nodes in the graph."""
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        """Check if a node with the given id is in the graph."""
        return node_id in self.nodes

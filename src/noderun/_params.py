"""User-set values for external node inputs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    from ._model import NodeId


@dataclass(slots=True, frozen=True)
class ExternalParameter:
    """Key of an external parameter: the node and the name of its input."""

    node_id: NodeId
    param_name: str

    def __str__(self) -> str:
        return f"{self.node_id}.{self.param_name}"


class ExternalParameterValues(dict[ExternalParameter, Any]):
    """Values of external parameters.

    A pass borrows this mapping and hands it back in its result, so gizmo
    hooks may write new values into it.
    """

    def get_value(self, node_id: NodeId, param_name: str) -> Any:
        """Get the value of an external parameter.

        Raises:
            KeyError: If no value is set for the parameter.

        """
        return self[ExternalParameter(node_id, param_name)]

    def set_value(self, node_id: NodeId, param_name: str, value: Any) -> None:
        """Set the value of an external parameter."""
        self[ExternalParameter(node_id, param_name)] = value

    def for_node(self, node_id: NodeId) -> dict[str, Any]:
        """Get the values of all parameters of one node, keyed by input name."""
        return {key.param_name: value for key, value in self.items() if key.node_id == node_id}

    def copy(self) -> Self:
        return type(self)(self)

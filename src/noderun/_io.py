"""Loading graphs and parameter values from TOML, and exporting parameters."""

import logging
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Self

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ._model import Connection, External, Graph, InputParameter, Node
from ._params import ExternalParameterValues

logger = logging.getLogger(__name__)


class GraphFileError(Exception):
    """Error in a graph or parameter file."""


# =============================================================================
# Graph files
# =============================================================================


class InputDocument(BaseModel):
    """One input of a node. Connected if `node` is set, external otherwise."""

    model_config = ConfigDict(extra="forbid")

    node: str | None = None
    output: str | None = None
    promoted: bool = False

    @model_validator(mode="after")
    def _check_kind(self) -> Self:
        if (self.node is None) != (self.output is None):
            msg = "'node' and 'output' must be given together"
            raise ValueError(msg)
        if self.node is not None and self.promoted:
            msg = "only external inputs can be promoted"
            raise ValueError(msg)
        return self

    def to_input_parameter(self, name: str) -> InputParameter:
        if self.node is not None and self.output is not None:
            return InputParameter(name=name, kind=Connection(node=self.node, param_name=self.output))
        return InputParameter(name=name, kind=External(promoted=self.promoted))


class NodeDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    op: str
    return_value: str | None = None
    inputs: dict[str, InputDocument] = Field(default_factory=dict)

    def to_node(self) -> Node:
        return Node(
            op_name=self.op,
            inputs=tuple(doc.to_input_parameter(name) for name, doc in self.inputs.items()),
            return_value=self.return_value,
        )


class GraphDocument(BaseModel):
    """Schema of a graph file.

    Example:
        [nodes.box]
        op = "MakeBox"
        return_value = "mesh"

        [nodes.box.inputs.size]
        promoted = true

    """

    model_config = ConfigDict(extra="forbid")

    nodes: dict[str, NodeDocument] = Field(default_factory=dict)

    def to_graph(self) -> Graph:
        return Graph(nodes={node_id: doc.to_node() for node_id, doc in self.nodes.items()})

    @classmethod
    def from_graph(cls, graph: Graph) -> Self:
        nodes: dict[str, NodeDocument] = {}
        for node_id, node in graph.nodes.items():
            inputs: dict[str, InputDocument] = {}
            for param in node.inputs:
                match param.kind:
                    case Connection(node=producer_id, param_name=output_name):
                        inputs[param.name] = InputDocument(node=producer_id, output=output_name)
                    case External(promoted=promoted):
                        inputs[param.name] = InputDocument(promoted=promoted)
            nodes[node_id] = NodeDocument(op=node.op_name, return_value=node.return_value, inputs=inputs)
        return cls(nodes=nodes)


def _load_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Invalid TOML in {path}: {e}"
            raise GraphFileError(msg) from e


def toml_to_graph(toml_contents: Mapping[str, Any]) -> Graph:
    """Convert parsed TOML contents into a Graph.

    Raises:
        GraphFileError: If the contents do not match the graph schema.

    """
    try:
        document = GraphDocument.model_validate(toml_contents)
    except ValidationError as e:
        msg = f"Invalid graph definition: {e}"
        raise GraphFileError(msg) from e
    return document.to_graph()


def load_graph_from_toml(input_path: Path | str) -> Graph:
    """Load a graph from a TOML file.

    Inputs keep the order in which they appear in the file.
    """
    input_path = Path(input_path)
    graph = toml_to_graph(_load_toml(input_path))
    for error in graph.validate():
        logger.warning(error)
    logger.debug("Loaded %d nodes from %s", len(graph), input_path)
    return graph


def export_graph_to_toml(graph: Graph, output_path: Path | str) -> None:
    data = GraphDocument.from_graph(graph).model_dump(mode="python", exclude_defaults=True)
    output_path = Path(output_path)
    with output_path.open("wb") as f:
        tomli_w.dump(data, f)
    logger.debug("Exported graph to %s", output_path)


# =============================================================================
# Parameter files
# =============================================================================


def toml_to_parameters(
    toml_contents: Mapping[str, Any],
    graph: Graph | None = None,
) -> ExternalParameterValues:
    """Convert parsed TOML contents into parameter values.

    The contents hold one table per node id, keyed by input name. If a graph is
    given, values that do not belong to one of its external inputs are skipped.

    Raises:
        GraphFileError: If a top-level entry is not a table.

    """
    known: set[tuple[str, str]] | None = None
    if graph is not None:
        known = {(node_id, param.name) for node_id, param in graph.external_parameters()}

    values = ExternalParameterValues()
    for node_id, node_values in toml_contents.items():
        if not isinstance(node_values, dict):
            msg = f"Expected a table of parameters for node '{node_id}', got {type(node_values).__name__}"
            raise GraphFileError(msg)
        for param_name, value in node_values.items():
            if known is not None and (node_id, param_name) not in known:
                logger.warning("Skipping '%s.%s': not an external input of the graph", node_id, param_name)
                continue
            values.set_value(node_id, param_name, value)
    return values


def load_parameters_from_toml(
    input_path: Path | str,
    graph: Graph | None = None,
) -> ExternalParameterValues:
    """Load external parameter values from a TOML file."""
    input_path = Path(input_path)
    values = toml_to_parameters(_load_toml(input_path), graph)
    logger.debug("Loaded %d parameter values from %s", len(values), input_path)
    return values


def _serialize_value(value: Any) -> Any:
    """Recursively convert a value into something TOML can hold."""
    if isinstance(value, BaseModel):
        return _serialize_value(value.model_dump(mode="python"))

    # TOML has no null
    if isinstance(value, dict):
        return {str(k): _serialize_value(v) for k, v in value.items() if v is not None}

    if isinstance(value, (list, tuple)):
        return [_serialize_value(item) for item in value]

    if isinstance(value, Path):
        return str(value)

    return value


def parameters_to_dict(values: ExternalParameterValues) -> dict[str, dict[str, Any]]:
    """Convert parameter values to nested tables, skipping None values."""
    data: dict[str, dict[str, Any]] = {}
    for key, value in values.items():
        if value is None:
            continue
        data.setdefault(key.node_id, {})[key.param_name] = _serialize_value(value)
    return data


def dump_parameters_to_toml(values: ExternalParameterValues, output_path: Path | str) -> None:
    """Write parameter values to a TOML file readable by `load_parameters_from_toml`.

    Raises:
        TypeError: If a value cannot be represented in TOML. The file is left
            untouched.

    """
    output_path = Path(output_path)
    content = tomli_w.dumps(parameters_to_dict(values))
    output_path.write_text(content, encoding="utf-8")
    logger.debug("Exported %d parameter values to %s", len(values), output_path)

"""Evaluate the points graph from Python, feeding gizmos back for a second round."""

from pathlib import Path

import noderun as nr
from ops import registry

here = Path(__file__).parent
graph = nr.load_graph_from_toml(here / "graph.toml")
values = nr.load_parameters_from_toml(here / "params.toml", graph)

first = nr.run_graph(graph, "moved", values, registry, nr.RunGizmosOut())
print("first:", first.renderable, first.updated_gizmos)

# The user dragged the gizmo: feed the new offset back in.
second = nr.run_graph(graph, "moved", first.updated_values, registry, nr.RunGizmosInOut(((3.0, -1.0),)))
print("second:", second.renderable, second.updated_gizmos)

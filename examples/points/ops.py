"""Operations on 2D points, with a translation gizmo.

Run from this directory:

    noderun run graph.toml -t moved --ops ops:registry -p params.toml --gizmos
"""

from typing import Any

import noderun as nr

registry = nr.OperationRegistry()


@registry.operation("Point")
def point(inputs: dict[str, Any]) -> dict[str, Any]:
    return {"point": (float(inputs["x"]), float(inputs["y"]))}


@registry.operation("Midpoint")
def midpoint(inputs: dict[str, Any]) -> dict[str, Any]:
    (ax, ay), (bx, by) = inputs["a"], inputs["b"]
    return {"point": ((ax + bx) / 2, (ay + by) / 2)}


class Translate(nr.Operation):
    """Moves a point. The gizmo is the offset, which the user drags around."""

    name = "Translate"
    has_gizmo = True

    def op(self, inputs: dict[str, Any]) -> dict[str, Any]:
        x, y = inputs["point"]
        dx, dy = inputs["offset"]
        return {"point": (x + dx, y + dy), "offset": tuple(inputs["offset"])}

    def pre_gizmo(self, inputs: dict[str, Any], gizmos: list[Any]) -> dict[str, Any]:
        if not gizmos:
            return inputs
        return {**inputs, "offset": gizmos[0]}

    def post_gizmo(self, outputs: dict[str, Any]) -> list[Any]:
        return [outputs["offset"]]


registry.add(Translate())

"""Tests for the evaluation engine module."""

import sys
from collections import Counter
from typing import Any

import pytest

import noderun as nr
from noderun._eval_engine import InterpreterContext, ProgramResult, Renderable, run_graph, run_node

# --- Fixtures ---


def external(name: str, *, promoted: bool = False) -> nr.InputParameter:
    return nr.InputParameter(name, nr.External(promoted=promoted))


def connect(name: str, node: str, output: str) -> nr.InputParameter:
    return nr.InputParameter(name, nr.Connection(node=node, param_name=output))


def chain_graph(depth: int) -> nr.Graph:
    """Number node n0 followed by Echo nodes n1..n{depth-1}, each reading the previous one."""
    nodes = {"n0": nr.Node(op_name="Number", inputs=(external("value"),), return_value="value")}
    for i in range(1, depth):
        nodes[f"n{i}"] = nr.Node(
            op_name="Echo",
            inputs=(connect("value", f"n{i - 1}", "value"),),
            return_value="value",
        )
    return nr.Graph(nodes=nodes)


@pytest.fixture
def calls() -> Counter[str]:
    return Counter()


@pytest.fixture
def registry(calls: Counter[str]) -> nr.OperationRegistry:
    """Registry with a few arithmetic operations that count their calls."""
    ops = nr.OperationRegistry()

    @ops.operation("Number")
    def number(inputs: dict[str, Any]) -> dict[str, Any]:
        calls["Number"] += 1
        return {"value": inputs["value"]}

    @ops.operation("Add")
    def add(inputs: dict[str, Any]) -> dict[str, Any]:
        calls["Add"] += 1
        return {"out": inputs["a"] + inputs["b"], "other": "ignored"}

    @ops.operation("Double")
    def double(inputs: dict[str, Any]) -> dict[str, Any]:
        calls["Double"] += 1
        return {"out": inputs["x"] * 2}

    @ops.operation("Echo")
    def echo(inputs: dict[str, Any]) -> dict[str, Any]:
        calls["Echo"] += 1
        return dict(inputs)

    return ops


@pytest.fixture
def diamond() -> nr.Graph:
    """`src` feeds `left` and `right`, which both feed `sum`."""
    return nr.Graph(
        nodes={
            "src": nr.Node(op_name="Number", inputs=(external("value"),)),
            "left": nr.Node(op_name="Double", inputs=(connect("x", "src", "value"),)),
            "right": nr.Node(op_name="Double", inputs=(connect("x", "src", "value"),)),
            "sum": nr.Node(
                op_name="Add",
                inputs=(connect("a", "left", "out"), connect("b", "right", "out")),
                return_value="out",
            ),
        },
    )


@pytest.fixture
def diamond_values() -> nr.ExternalParameterValues:
    values = nr.ExternalParameterValues()
    values.set_value("src", "value", 3)
    return values


# --- Renderable ---


class TestRenderable:
    def test_from_value(self) -> None:
        assert Renderable.from_value(42) == Renderable(value=42)

    def test_none_is_not_renderable(self) -> None:
        with pytest.raises(nr.OperationContractError):
            Renderable.from_value(None)


# --- run_graph ---


class TestRunGraph:
    """Tests for run_graph."""

    def test_simple_chain(self, registry: nr.OperationRegistry) -> None:
        graph = nr.Graph(
            nodes={
                "n": nr.Node(op_name="Number", inputs=(external("value"),)),
                "d": nr.Node(op_name="Double", inputs=(connect("x", "n", "value"),), return_value="out"),
            },
        )
        values = nr.ExternalParameterValues()
        values.set_value("n", "value", 21)

        result = run_graph(graph, "d", values, registry)

        assert isinstance(result, ProgramResult)
        assert result.renderable == Renderable(42)

    def test_diamond_runs_shared_producer_once(
        self,
        diamond: nr.Graph,
        diamond_values: nr.ExternalParameterValues,
        registry: nr.OperationRegistry,
        calls: Counter[str],
    ) -> None:
        result = run_graph(diamond, "sum", diamond_values, registry)

        assert result.renderable is not None
        assert result.renderable.value == 12
        assert calls["Number"] == 1
        assert calls["Double"] == 2
        assert calls["Add"] == 1

    def test_return_output_selected_from_outputs(
        self,
        diamond: nr.Graph,
        diamond_values: nr.ExternalParameterValues,
        registry: nr.OperationRegistry,
    ) -> None:
        """Only the declared return output reaches the result, other outputs are ignored."""
        result = run_graph(diamond, "sum", diamond_values, registry)

        assert result.renderable == Renderable(12)

    def test_no_return_value_gives_no_renderable(
        self,
        registry: nr.OperationRegistry,
        calls: Counter[str],
    ) -> None:
        graph = nr.Graph(nodes={"n": nr.Node(op_name="Number", inputs=(external("value"),))})
        values = nr.ExternalParameterValues()
        values.set_value("n", "value", 1)

        result = run_graph(graph, "n", values, registry)

        assert result.renderable is None
        assert calls["Number"] == 1

    def test_missing_return_output(self, registry: nr.OperationRegistry) -> None:
        graph = nr.Graph(
            nodes={"n": nr.Node(op_name="Number", inputs=(external("value"),), return_value="nope")},
        )
        values = nr.ExternalParameterValues()
        values.set_value("n", "value", 1)

        with pytest.raises(nr.MissingReturnOutputError) as exc_info:
            run_graph(graph, "n", values, registry)

        assert exc_info.value.node_id == "n"
        assert exc_info.value.output_name == "nope"

    def test_none_return_output_is_a_contract_error(self, registry: nr.OperationRegistry) -> None:
        graph = nr.Graph(
            nodes={"n": nr.Node(op_name="Number", inputs=(external("value"),), return_value="value")},
        )
        values = nr.ExternalParameterValues()
        values.set_value("n", "value", None)

        with pytest.raises(nr.OperationContractError) as exc_info:
            run_graph(graph, "n", values, registry)

        assert exc_info.value.node_id == "n"

    def test_unrelated_nodes_are_not_run(
        self,
        diamond: nr.Graph,
        diamond_values: nr.ExternalParameterValues,
        registry: nr.OperationRegistry,
        calls: Counter[str],
    ) -> None:
        nodes = dict(diamond.nodes)
        nodes["lonely"] = nr.Node(op_name="Echo", inputs=(external("x"),))
        nodes["lonely_child"] = nr.Node(op_name="Echo", inputs=(connect("y", "lonely", "x"),))
        graph = nr.Graph(nodes=nodes)

        # "lonely" has no parameter value: running it would fail
        run_graph(graph, "left", diamond_values, registry)

        assert calls["Echo"] == 0
        assert calls["Add"] == 0
        assert calls["Double"] == 1

    def test_external_parameter_reaches_operation(self, registry: nr.OperationRegistry) -> None:
        graph = nr.Graph(
            nodes={
                "a": nr.Node(op_name="Number", inputs=(external("value"),)),
                "b": nr.Node(
                    op_name="Echo",
                    inputs=(connect("in", "a", "value"), external("x", promoted=True)),
                    return_value="x",
                ),
            },
        )
        values = nr.ExternalParameterValues()
        values.set_value("a", "value", 1)
        values.set_value("b", "x", 5)

        result = run_graph(graph, "b", values, registry)

        assert result.renderable == Renderable(5)

    def test_missing_external_parameter(self, registry: nr.OperationRegistry) -> None:
        graph = nr.Graph(
            nodes={
                "a": nr.Node(op_name="Number", inputs=(external("value"),)),
                "b": nr.Node(op_name="Echo", inputs=(connect("in", "a", "value"), external("x"))),
            },
        )
        values = nr.ExternalParameterValues()
        values.set_value("a", "value", 1)

        with pytest.raises(nr.MissingExternalParameterError) as exc_info:
            run_graph(graph, "b", values, registry)

        assert exc_info.value.node_id == "b"
        assert exc_info.value.param_name == "x"
        assert "'x'" in str(exc_info.value)

    def test_updated_values_is_the_given_store(
        self,
        diamond: nr.Graph,
        diamond_values: nr.ExternalParameterValues,
        registry: nr.OperationRegistry,
    ) -> None:
        result = run_graph(diamond, "sum", diamond_values, registry)

        assert result.updated_values is diamond_values
        assert result.updated_gizmos is None

    def test_unknown_target(self, diamond: nr.Graph, registry: nr.OperationRegistry) -> None:
        with pytest.raises(nr.UnknownNodeError):
            run_graph(diamond, "missing", nr.ExternalParameterValues(), registry)

    def test_unknown_operation(self, registry: nr.OperationRegistry) -> None:
        graph = nr.Graph(nodes={"n": nr.Node(op_name="DoesNotExist")})

        with pytest.raises(nr.UnknownOperationError, match="DoesNotExist") as exc_info:
            run_graph(graph, "n", nr.ExternalParameterValues(), registry)

        assert exc_info.value.node_id == "n"

    def test_missing_cached_output(self, registry: nr.OperationRegistry) -> None:
        graph = nr.Graph(
            nodes={
                "n": nr.Node(op_name="Number", inputs=(external("value"),)),
                "d": nr.Node(op_name="Double", inputs=(connect("x", "n", "wrong_name"),)),
            },
        )
        values = nr.ExternalParameterValues()
        values.set_value("n", "value", 1)

        with pytest.raises(nr.MissingCachedOutputError) as exc_info:
            run_graph(graph, "d", values, registry)

        assert exc_info.value.node_id == "d"
        assert exc_info.value.producer_id == "n"
        assert exc_info.value.output_name == "wrong_name"

    def test_operation_must_return_mapping(self) -> None:
        ops = nr.OperationRegistry()

        @ops.operation("Bad")
        def bad(_inputs: dict[str, Any]) -> Any:
            return [1, 2, 3]

        graph = nr.Graph(nodes={"n": nr.Node(op_name="Bad")})

        with pytest.raises(nr.OperationContractError, match="must return a mapping"):
            run_graph(graph, "n", nr.ExternalParameterValues(), ops)

    def test_operation_exception_is_wrapped(self) -> None:
        ops = nr.OperationRegistry()

        @ops.operation("Boom")
        def boom(_inputs: dict[str, Any]) -> dict[str, Any]:
            msg = "kaboom"
            raise ZeroDivisionError(msg)

        graph = nr.Graph(nodes={"n": nr.Node(op_name="Boom")})

        with pytest.raises(nr.OperationFailedError, match="kaboom") as exc_info:
            run_graph(graph, "n", nr.ExternalParameterValues(), ops)

        assert exc_info.value.node_id == "n"
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)

    def test_recursion_error_is_not_wrapped(self) -> None:
        ops = nr.OperationRegistry()

        @ops.operation("Deep")
        def deep(_inputs: dict[str, Any]) -> dict[str, Any]:
            msg = "too deep"
            raise RecursionError(msg)

        graph = nr.Graph(nodes={"n": nr.Node(op_name="Deep")})

        with pytest.raises(RecursionError, match="too deep"):
            run_graph(graph, "n", nr.ExternalParameterValues(), ops)

    def test_long_chain_exceeds_recursion_limit(self, registry: nr.OperationRegistry) -> None:
        """Each level of a chain costs stack frames, deep chains hit the limit."""
        depth = 2 * sys.getrecursionlimit()
        graph = chain_graph(depth)
        values = nr.ExternalParameterValues()
        values.set_value("n0", "value", 1)

        with pytest.raises(RecursionError):
            run_graph(graph, f"n{depth - 1}", values, registry)

    def test_long_chain_with_raised_recursion_limit(self, registry: nr.OperationRegistry) -> None:
        depth = 600
        graph = chain_graph(depth)
        values = nr.ExternalParameterValues()
        values.set_value("n0", "value", 1)

        limit = sys.getrecursionlimit()
        sys.setrecursionlimit(max(limit, 4 * depth + 1000))
        try:
            result = run_graph(graph, f"n{depth - 1}", values, registry)
        finally:
            sys.setrecursionlimit(limit)

        assert result.renderable is not None
        assert result.renderable.value == 1

    def test_cycle_detected(self, registry: nr.OperationRegistry) -> None:
        graph = nr.Graph(
            nodes={
                "a": nr.Node(op_name="Double", inputs=(connect("x", "c", "out"),)),
                "b": nr.Node(op_name="Double", inputs=(connect("x", "a", "out"),)),
                "c": nr.Node(op_name="Double", inputs=(connect("x", "b", "out"),)),
            },
        )

        with pytest.raises(nr.CycleDetectedError) as exc_info:
            run_graph(graph, "a", nr.ExternalParameterValues(), registry)

        assert exc_info.value.path == ("a", "c", "b", "a")

    def test_self_loop_detected(self, registry: nr.OperationRegistry) -> None:
        graph = nr.Graph(nodes={"a": nr.Node(op_name="Double", inputs=(connect("x", "a", "out"),))})

        with pytest.raises(nr.CycleDetectedError):
            run_graph(graph, "a", nr.ExternalParameterValues(), registry)

    def test_each_call_recomputes(
        self,
        diamond: nr.Graph,
        diamond_values: nr.ExternalParameterValues,
        registry: nr.OperationRegistry,
        calls: Counter[str],
    ) -> None:
        run_graph(diamond, "sum", diamond_values, registry)
        run_graph(diamond, "sum", diamond_values, registry)

        assert calls["Number"] == 2


# --- run_node ---


class TestRunNode:
    def test_memoization_hit_skips_operation(
        self,
        diamond: nr.Graph,
        diamond_values: nr.ExternalParameterValues,
        registry: nr.OperationRegistry,
        calls: Counter[str],
    ) -> None:
        ctx = InterpreterContext(
            external_param_values=diamond_values,
            operations=registry,
            target_node="sum",
            gizmo_config=nr.IgnoreGizmos(),
        )
        ctx.outputs_cache["left"] = {"out": 100}

        run_node(diamond, ctx, "sum")

        assert ctx.outputs_cache["sum"]["out"] == 106
        assert calls["Double"] == 1

    def test_failed_node_is_not_cached(self, registry: nr.OperationRegistry) -> None:
        graph = nr.Graph(nodes={"b": nr.Node(op_name="Echo", inputs=(external("x"),))})
        ctx = InterpreterContext(
            external_param_values=nr.ExternalParameterValues(),
            operations=registry,
            target_node="b",
            gizmo_config=nr.IgnoreGizmos(),
        )

        with pytest.raises(nr.MissingExternalParameterError):
            run_node(graph, ctx, "b")

        assert "b" not in ctx.outputs_cache
        assert ctx.visiting == []

    def test_shared_producer_cache_entry(
        self,
        diamond: nr.Graph,
        diamond_values: nr.ExternalParameterValues,
        registry: nr.OperationRegistry,
    ) -> None:
        ctx = InterpreterContext(
            external_param_values=diamond_values,
            operations=registry,
            target_node="sum",
            gizmo_config=nr.IgnoreGizmos(),
        )

        run_node(diamond, ctx, "sum")

        assert set(ctx.outputs_cache) == {"src", "left", "right", "sum"}
        assert ctx.outputs_cache["src"] == {"value": 3}


# --- Gizmos ---


@pytest.fixture
def gizmo_registry(calls: Counter[str]) -> nr.OperationRegistry:
    """`Shift` adds 1 to its input in pre_gizmo and reports its output as a gizmo."""
    ops = nr.OperationRegistry()
    seen: list[Any] = []

    @ops.operation("Number")
    def number(inputs: dict[str, Any]) -> dict[str, Any]:
        return {"value": inputs["value"]}

    @ops.operation("Shift", has_gizmo=True)
    def shift(inputs: dict[str, Any]) -> dict[str, Any]:
        calls["Shift"] += 1
        seen.append(inputs["x"])
        return {"out": inputs["x"]}

    @ops.pre_gizmo("Shift")
    def shift_pre(inputs: dict[str, Any], gizmos: list[Any]) -> dict[str, Any]:
        calls["pre_gizmo"] += 1
        return {**inputs, "x": inputs["x"] + 1 + sum(gizmos)}

    @ops.post_gizmo("Shift")
    def shift_post(outputs: dict[str, Any]) -> list[Any]:
        calls["post_gizmo"] += 1
        return [outputs["out"]]

    ops.seen = seen  # type: ignore[attr-defined]
    return ops


@pytest.fixture
def gizmo_graph() -> nr.Graph:
    return nr.Graph(
        nodes={
            "n": nr.Node(op_name="Number", inputs=(external("value"),)),
            "s": nr.Node(op_name="Shift", inputs=(connect("x", "n", "value"),), return_value="out"),
            "t": nr.Node(op_name="Shift", inputs=(connect("x", "s", "out"),), return_value="out"),
        },
    )


@pytest.fixture
def gizmo_values() -> nr.ExternalParameterValues:
    values = nr.ExternalParameterValues()
    values.set_value("n", "value", 10)
    return values


class TestGizmos:
    def test_round_trip(
        self,
        gizmo_graph: nr.Graph,
        gizmo_values: nr.ExternalParameterValues,
        gizmo_registry: nr.OperationRegistry,
    ) -> None:
        result = run_graph(gizmo_graph, "s", gizmo_values, gizmo_registry, nr.RunGizmosInOut(()))

        assert result.updated_gizmos == [11]
        assert result.renderable == Renderable(11)

    def test_disabled_gizmos_leave_inputs_alone(
        self,
        gizmo_graph: nr.Graph,
        gizmo_values: nr.ExternalParameterValues,
        gizmo_registry: nr.OperationRegistry,
        calls: Counter[str],
    ) -> None:
        result = run_graph(gizmo_graph, "s", gizmo_values, gizmo_registry, nr.IgnoreGizmos())

        assert result.updated_gizmos is None
        assert gizmo_registry.seen == [10]  # type: ignore[attr-defined]
        assert calls["pre_gizmo"] == 0
        assert calls["post_gizmo"] == 0

    def test_default_config_ignores_gizmos(
        self,
        gizmo_graph: nr.Graph,
        gizmo_values: nr.ExternalParameterValues,
        gizmo_registry: nr.OperationRegistry,
    ) -> None:
        result = run_graph(gizmo_graph, "s", gizmo_values, gizmo_registry)

        assert result.updated_gizmos is None

    def test_prior_gizmos_reach_pre_gizmo(
        self,
        gizmo_graph: nr.Graph,
        gizmo_values: nr.ExternalParameterValues,
        gizmo_registry: nr.OperationRegistry,
    ) -> None:
        result = run_graph(gizmo_graph, "s", gizmo_values, gizmo_registry, nr.RunGizmosInOut((5, 4)))

        assert result.updated_gizmos == [20]

    def test_out_only_skips_pre_gizmo(
        self,
        gizmo_graph: nr.Graph,
        gizmo_values: nr.ExternalParameterValues,
        gizmo_registry: nr.OperationRegistry,
        calls: Counter[str],
    ) -> None:
        result = run_graph(gizmo_graph, "s", gizmo_values, gizmo_registry, nr.RunGizmosOut())

        assert result.updated_gizmos == [10]
        assert calls["pre_gizmo"] == 0
        assert calls["post_gizmo"] == 1

    def test_hooks_only_run_for_target(
        self,
        gizmo_graph: nr.Graph,
        gizmo_values: nr.ExternalParameterValues,
        gizmo_registry: nr.OperationRegistry,
        calls: Counter[str],
    ) -> None:
        """`s` also has gizmos but only the target `t` runs its hooks."""
        result = run_graph(gizmo_graph, "t", gizmo_values, gizmo_registry, nr.RunGizmosInOut(()))

        assert calls["Shift"] == 2
        assert calls["pre_gizmo"] == 1
        assert calls["post_gizmo"] == 1
        assert gizmo_registry.seen == [10, 11]  # type: ignore[attr-defined]
        assert result.updated_gizmos == [11]

    def test_gizmos_enabled_without_gizmo_support(
        self,
        diamond: nr.Graph,
        diamond_values: nr.ExternalParameterValues,
        registry: nr.OperationRegistry,
    ) -> None:
        result = run_graph(diamond, "sum", diamond_values, registry, nr.RunGizmosOut())

        assert result.updated_gizmos == []

    def test_missing_pre_gizmo_hook(self, gizmo_values: nr.ExternalParameterValues) -> None:
        ops = nr.OperationRegistry()
        ops.register(nr.OperationDefinition(name="G", op=lambda inputs: {"out": 1}, has_gizmo=True))
        graph = nr.Graph(nodes={"g": nr.Node(op_name="G")})

        with pytest.raises(nr.GizmoHookMissingError) as exc_info:
            run_graph(graph, "g", gizmo_values, ops, nr.RunGizmosInOut(()))

        assert exc_info.value.hook == "pre_gizmo"
        assert exc_info.value.node_id == "g"

    def test_missing_post_gizmo_hook(self, gizmo_values: nr.ExternalParameterValues) -> None:
        ops = nr.OperationRegistry()
        ops.register(nr.OperationDefinition(name="G", op=lambda inputs: {"out": 1}, has_gizmo=True))
        graph = nr.Graph(nodes={"g": nr.Node(op_name="G")})

        with pytest.raises(nr.GizmoHookMissingError) as exc_info:
            run_graph(graph, "g", gizmo_values, ops, nr.RunGizmosOut())

        assert exc_info.value.hook == "post_gizmo"

    def test_pre_gizmo_must_return_mapping(self, gizmo_values: nr.ExternalParameterValues) -> None:
        ops = nr.OperationRegistry()
        ops.register(
            nr.OperationDefinition(
                name="G",
                op=lambda inputs: {"out": 1},
                has_gizmo=True,
                pre_gizmo=lambda inputs, gizmos: None,
                post_gizmo=lambda outputs: [],
            ),
        )
        graph = nr.Graph(nodes={"g": nr.Node(op_name="G")})

        with pytest.raises(nr.OperationContractError, match="pre_gizmo"):
            run_graph(graph, "g", gizmo_values, ops, nr.RunGizmosInOut(()))

    @pytest.mark.parametrize("bad", [None, "gizmo", {"a": 1}.keys(), 3])
    def test_post_gizmo_must_return_sequence(self, gizmo_values: nr.ExternalParameterValues, bad: Any) -> None:
        ops = nr.OperationRegistry()
        ops.register(
            nr.OperationDefinition(
                name="G",
                op=lambda inputs: {"out": 1},
                has_gizmo=True,
                post_gizmo=lambda outputs: bad,
            ),
        )
        graph = nr.Graph(nodes={"g": nr.Node(op_name="G")})

        with pytest.raises(nr.OperationContractError, match="post_gizmo"):
            run_graph(graph, "g", gizmo_values, ops, nr.RunGizmosOut())

    def test_post_gizmo_replaces_accumulator(self, gizmo_values: nr.ExternalParameterValues) -> None:
        ops = nr.OperationRegistry()
        ops.register(
            nr.OperationDefinition(
                name="G",
                op=lambda inputs: {"out": 1},
                has_gizmo=True,
                post_gizmo=lambda outputs: ("new",),
            ),
        )
        graph = nr.Graph(nodes={"g": nr.Node(op_name="G")})
        ctx = InterpreterContext(
            external_param_values=gizmo_values,
            operations=ops,
            target_node="g",
            gizmo_config=nr.RunGizmosOut(),
            gizmo_outputs=["stale", "stale"],
        )

        run_node(graph, ctx, "g")

        assert ctx.gizmo_outputs == ["new"]

    def test_pre_gizmo_may_update_parameters(self) -> None:
        """Hooks can write into the parameter store, which comes back in the result."""
        values = nr.ExternalParameterValues()
        values.set_value("g", "size", 1)

        ops = nr.OperationRegistry()

        @ops.operation("Grow", has_gizmo=True)
        def grow(inputs: dict[str, Any]) -> dict[str, Any]:
            return {"out": inputs["size"]}

        @ops.pre_gizmo("Grow")
        def grow_pre(inputs: dict[str, Any], gizmos: list[Any]) -> dict[str, Any]:
            values.set_value("g", "size", gizmos[0])
            return {"size": gizmos[0]}

        @ops.post_gizmo("Grow")
        def grow_post(outputs: dict[str, Any]) -> list[Any]:
            return [outputs["out"]]

        graph = nr.Graph(nodes={"g": nr.Node(op_name="Grow", inputs=(external("size"),), return_value="out")})

        result = run_graph(graph, "g", values, ops, nr.RunGizmosInOut((7,)))

        assert result.renderable == Renderable(7)
        assert result.updated_values.get_value("g", "size") == 7

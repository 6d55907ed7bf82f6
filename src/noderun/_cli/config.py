"""Configuration loading from pyproject.toml."""

import tomllib
from dataclasses import dataclass
from pathlib import Path


class ConfigError(Exception):
    """Error in noderun configuration."""


@dataclass(slots=True, frozen=True)
class NoderunConfig:
    """Configuration loaded from the [tool.noderun] table of pyproject.toml.

    All relative paths are resolved from the project root (directory containing pyproject.toml).

    Attributes:
        operations: Module path of the operation registry (e.g., 'mypkg.ops:registry').
        graph: Default graph file.
        params: Default parameter file.
        output: Where updated parameter values are written.
        project_root: Directory containing pyproject.toml.

    """

    operations: str | None = None
    graph: Path | None = None
    params: Path | None = None
    output: Path | None = None
    project_root: Path | None = None


def find_pyproject_toml(start_dir: Path | None = None) -> Path | None:
    """Locate the project file that may hold the `[tool.noderun]` table.

    The search starts in `start_dir` (the working directory when omitted) and
    stops at the first directory that contains a `pyproject.toml`, so a graph
    run from a subfolder still picks up the project settings.
    """
    start = (start_dir or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / "pyproject.toml"
        if candidate.is_file():
            return candidate
    return None


def _parse_operations(value: object) -> str:
    if not isinstance(value, str):
        msg = "Invalid [tool.noderun].operations: expected string"
        raise ConfigError(msg)
    if ":" not in value:
        msg = f"Invalid module path '{value}'. Expected format: 'module.path:variable_name'"
        raise ConfigError(msg)
    return value


def _parse_path(section: dict[str, object], key: str, project_root: Path) -> Path | None:
    if key not in section:
        return None
    value = section[key]
    if not isinstance(value, str):
        msg = f"Invalid [tool.noderun].{key}: expected string path"
        raise ConfigError(msg)
    path = Path(value)
    if not path.is_absolute():
        path = project_root / path
    return path


def load_config(pyproject_path: Path) -> NoderunConfig:
    """Load and validate [tool.noderun] config from pyproject.toml.

    Args:
        pyproject_path: Path to pyproject.toml

    Returns:
        Parsed NoderunConfig

    Raises:
        ConfigError: If the configuration is invalid

    """
    project_root = pyproject_path.parent

    with pyproject_path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Invalid TOML in {pyproject_path}: {e}"
            raise ConfigError(msg) from e

    section = data.get("tool", {}).get("noderun", {})
    if not section:
        return NoderunConfig(project_root=project_root)

    if not isinstance(section, dict):
        msg = "Invalid [tool.noderun]: expected a table"
        raise ConfigError(msg)

    operations: str | None = None
    if "operations" in section:
        operations = _parse_operations(section["operations"])

    return NoderunConfig(
        operations=operations,
        graph=_parse_path(section, "graph", project_root),
        params=_parse_path(section, "params", project_root),
        output=_parse_path(section, "output", project_root),
        project_root=project_root,
    )


def get_config(start_dir: Path | None = None) -> NoderunConfig:
    """Settings for the project around `start_dir`.

    Without a project file every setting is unset and CLI options must supply
    the graph, parameters and registry.
    """
    pyproject_path = find_pyproject_toml(start_dir)
    if pyproject_path is None:
        return NoderunConfig()
    return load_config(pyproject_path)

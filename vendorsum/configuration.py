"""Workspace-aware configuration loading for vendorsum."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, MutableMapping, Optional, Sequence

import yaml

DEFAULT_CONFIG_NAMES: List[str] = [".vendorsum.yml", ".vendorsum.yaml"]

DiagnosticLevel = Literal["info", "warning", "error"]
ConfigurationStatus = Literal["ready", "defaults", "invalid"]


SchemaSpec = Dict[str, Any]


CONFIG_SCHEMA: SchemaSpec = {
    "vendor": {
        "type": dict,
        "schema": {
            "dir": {"type": str, "default": "vendor"},
        },
        "default": {},
    },
    "sync": {
        "type": dict,
        "schema": {
            "ignore_missing": {"type": bool, "default": False},
            "num_threads": {"type": (int, type(None)), "default": None},
        },
        "default": {},
    },
    "logging": {
        "type": dict,
        "schema": {
            "level": {"type": str, "default": "WARNING"},
            "file": {"type": (str, type(None)), "default": None},
            "structured": {"type": bool, "default": False},
        },
        "default": {},
    },
}


@dataclass
class Diagnostic:
    """Represents a configuration validation or loading issue."""

    level: DiagnosticLevel
    message: str
    source: Optional[Path] = None


@dataclass
class ConfigurationBundle:
    """Everything the command line needs before it touches the vendor tree."""

    workspace_dir: Path
    status: ConfigurationStatus
    merged: Dict[str, Any] = field(default_factory=dict)
    files_loaded: List[Path] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    log_path: Optional[Path] = None

    def section(self, name: str) -> Dict[str, Any]:
        value = self.merged.get(name) if self.merged else None
        return value if isinstance(value, dict) else {}


def load_runtime_configuration(
    workspace_dir: Optional[Path] = None,
    config_files: Sequence[Path] = (),
) -> ConfigurationBundle:
    """Merge workspace config files and explicit ``--config`` files over defaults."""

    resolved_workspace = workspace_dir or Path.cwd()
    diagnostics: List[Diagnostic] = []
    files_loaded: List[Path] = []
    merged: Dict[str, Any] = {}

    candidates = [resolved_workspace / name for name in DEFAULT_CONFIG_NAMES]
    for candidate in candidates:
        if candidate.is_file():
            _load_yaml_file(candidate, merged, files_loaded, diagnostics)

    for explicit in config_files:
        if not explicit.exists():
            diagnostics.append(
                Diagnostic(
                    level="error",
                    message=f"Configuration file '{explicit}' does not exist.",
                    source=explicit,
                )
            )
            continue
        _load_yaml_file(explicit, merged, files_loaded, diagnostics)

    if not files_loaded and not diagnostics:
        diagnostics.append(
            Diagnostic(
                level="info",
                message=f"No configuration found under '{resolved_workspace}'; using defaults.",
                source=resolved_workspace,
            )
        )

    _validate_schema(merged, diagnostics)

    status: ConfigurationStatus = "ready" if files_loaded else "defaults"
    if any(diag.level == "error" for diag in diagnostics):
        status = "invalid"

    return ConfigurationBundle(
        workspace_dir=resolved_workspace,
        status=status,
        merged=merged,
        files_loaded=files_loaded,
        diagnostics=diagnostics,
    )


def _load_yaml_file(
    yaml_file: Path,
    data: Dict[str, Any],
    loaded_files: List[Path],
    diagnostics: List[Diagnostic],
) -> None:
    try:
        content = yaml.safe_load(yaml_file.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"Failed to parse '{yaml_file}': {exc}",
                source=yaml_file,
            )
        )
        return
    except OSError as exc:
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"Failed to read '{yaml_file}': {exc}",
                source=yaml_file,
            )
        )
        return

    if content is None:
        loaded_files.append(yaml_file)
        return

    if not isinstance(content, MutableMapping):
        diagnostics.append(
            Diagnostic(
                level="warning",
                message=f"Ignoring '{yaml_file}' because it does not contain a mapping.",
                source=yaml_file,
            )
        )
        return

    content = dict(content)
    _anchor_log_file(content, yaml_file.parent)
    _deep_merge_dicts(data, content)
    loaded_files.append(yaml_file)


def _anchor_log_file(content: Dict[str, Any], base_dir: Path) -> None:
    """Resolve a relative `logging.file` against the directory of its config file."""

    log_settings = content.get("logging")
    if not isinstance(log_settings, dict):
        return
    log_file = log_settings.get("file")
    if isinstance(log_file, str) and log_file and not Path(log_file).is_absolute():
        content["logging"] = {**log_settings, "file": str(base_dir / log_file)}


def _deep_merge_dicts(dest: MutableMapping[str, Any], source: Mapping[str, Any]) -> None:
    """Recursively merge mapping values."""

    for key, value in source.items():
        if (
            key in dest
            and isinstance(dest[key], MutableMapping)
            and isinstance(value, Mapping)
        ):
            _deep_merge_dicts(dest[key], value)
        else:
            dest[key] = deepcopy(value)


def _default_from_spec(spec: SchemaSpec) -> Any:
    return deepcopy(spec.get("default"))


def _type_name(expected_type: Any) -> str:
    if isinstance(expected_type, tuple):
        return " or ".join("null" if t is type(None) else t.__name__ for t in expected_type)
    return expected_type.__name__


def _validate_schema(config: Dict[str, Any], diagnostics: List[Diagnostic]) -> None:
    _validate_section(config, CONFIG_SCHEMA, "config", diagnostics)

    threads = config.get("sync", {}).get("num_threads")
    if threads is not None and threads < 1:
        diagnostics.append(
            Diagnostic(
                level="error",
                message="'config.sync.num_threads' must be at least 1.",
            )
        )
        config["sync"]["num_threads"] = None


def _validate_section(
    target: Dict[str, Any],
    schema: SchemaSpec,
    path: str,
    diagnostics: List[Diagnostic],
) -> None:
    for key in list(target.keys()):
        if key not in schema:
            diagnostics.append(
                Diagnostic(
                    level="warning",
                    message=f"Unknown configuration key '{path}.{key}'.",
                )
            )

    for key, spec in schema.items():
        child_path = f"{path}.{key}"
        if key not in target:
            if "default" in spec:
                target[key] = _default_from_spec(spec)
            if spec.get("type") is dict:
                _validate_section(target[key], spec.get("schema", {}), child_path, diagnostics)
            continue

        value = target[key]
        expected_type = spec.get("type")

        if expected_type is dict:
            if not isinstance(value, dict):
                diagnostics.append(
                    Diagnostic(
                        level="error",
                        message=f"'{child_path}' must be a mapping.",
                    )
                )
                target[key] = _default_from_spec(spec) or {}
            _validate_section(target[key], spec.get("schema", {}), child_path, diagnostics)
        # Booleans only satisfy keys declared as bool.
        elif expected_type and (
            not isinstance(value, expected_type)
            or (isinstance(value, bool) and expected_type is not bool)
        ):
            diagnostics.append(
                Diagnostic(
                    level="error",
                    message=f"'{child_path}' must be of type {_type_name(expected_type)}.",
                )
            )
            target[key] = _default_from_spec(spec)


__all__ = [
    "CONFIG_SCHEMA",
    "ConfigurationBundle",
    "ConfigurationStatus",
    "DEFAULT_CONFIG_NAMES",
    "Diagnostic",
    "load_runtime_configuration",
]

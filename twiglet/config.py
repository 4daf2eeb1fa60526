"""
Engine configuration.

Limits and file-system loader settings, read from a YAML file:

    template_dirs: [templates, shared/templates]
    extensions: ["", ".html", ".twig"]
    encoding: utf-8
    max_depth: 32
    macro_depth: 64
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Tuple

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .loader import DEFAULT_EXTENSIONS, FileSystemLoader

if TYPE_CHECKING:
    from .engine import Engine
    from .functions import FunctionRegistry

logger = logging.getLogger(__name__)

_yaml = YAML(typ="safe")


class ConfigError(ValueError):
    """Invalid configuration, with the path of the offending field."""
    pass


@dataclass(frozen=True)
class EngineConfig:
    """
    Attributes:
        template_dirs: Search paths of the file-system loader
        extensions: Suffixes tried after a template name, in order
        encoding: Template file encoding
        max_depth: Maximum extends/include nesting
        macro_depth: Maximum nested macro calls
    """
    template_dirs: Tuple[str, ...] = ()
    extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    encoding: str = "utf-8"
    max_depth: int = 32
    macro_depth: int = 64

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], *, path: str = "$") -> EngineConfig:
        """
        Builds a config from plain data.

        Raises:
            ConfigError: Unknown keys or values of the wrong type
        """
        if not isinstance(raw, Mapping):
            raise ConfigError(f"{path}: expected mapping, got {type(raw).__name__}")

        known = {f.name for f in fields(cls)}
        extras = set(raw) - known
        if extras:
            raise ConfigError(f"{path}: unknown key(s): {sorted(extras)}")

        kwargs: dict[str, Any] = {}
        if "template_dirs" in raw:
            kwargs["template_dirs"] = _str_list(raw["template_dirs"], f"{path}.template_dirs")
        if "extensions" in raw:
            kwargs["extensions"] = _str_list(raw["extensions"], f"{path}.extensions")
        if "encoding" in raw:
            kwargs["encoding"] = _str(raw["encoding"], f"{path}.encoding")
        for name in ("max_depth", "macro_depth"):
            if name in raw:
                kwargs[name] = _positive_int(raw[name], f"{path}.{name}")
        return cls(**kwargs)

    def with_template_dirs(self, dirs: List[str]) -> EngineConfig:
        """Copy with extra search paths prepended."""
        return replace(self, template_dirs=tuple(dirs) + self.template_dirs)


def _str(val: Any, path: str) -> str:
    if not isinstance(val, str):
        raise ConfigError(f"{path}: expected str, got {type(val).__name__}")
    return val


def _str_list(val: Any, path: str) -> Tuple[str, ...]:
    if isinstance(val, str):
        return (val,)
    if not isinstance(val, list):
        raise ConfigError(f"{path}: expected list of str, got {type(val).__name__}")
    return tuple(_str(item, f"{path}[{i}]") for i, item in enumerate(val))


def _positive_int(val: Any, path: str) -> int:
    if isinstance(val, bool) or not isinstance(val, int):
        raise ConfigError(f"{path}: expected int, got {type(val).__name__}")
    if val < 1:
        raise ConfigError(f"{path}: must be >= 1, got {val}")
    return val


def load_config(path: Path) -> EngineConfig:
    """
    Reads an EngineConfig from a YAML file.

    Relative template_dirs are resolved against the file's directory.

    Raises:
        ConfigError: Unreadable file, invalid YAML or invalid values
    """
    path = Path(path)
    try:
        raw = _yaml.load(path.read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise ConfigError(f"{path}: cannot read config: {e}") from e
    except YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from e

    config = EngineConfig.from_mapping(raw, path=str(path))
    base = path.parent
    dirs = tuple(str(base / d) if not Path(d).is_absolute() else d for d in config.template_dirs)
    logger.debug(f"Loaded config {path}: template_dirs={list(dirs)}")
    return replace(config, template_dirs=dirs)


def create_engine(config: EngineConfig, functions: Optional[FunctionRegistry] = None) -> Engine:
    """Engine with a FileSystemLoader over config.template_dirs."""
    from .engine import Engine

    loader = FileSystemLoader(config.template_dirs, config.extensions, config.encoding)
    return Engine(loader, functions=functions, config=config)


__all__ = ["EngineConfig", "ConfigError", "load_config", "create_engine"]

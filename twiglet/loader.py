"""
Template loaders.

A loader maps a template name to its source text. The engine calls
load() at most once per name and caches the parsed result.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional, Protocol, Sequence, Tuple, Union

from .errors import ErrorCode, TemplateLoadError, TemplateNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS: Tuple[str, ...] = ("", ".html", ".twig")


class Loader(Protocol):
    """Loader contract."""

    def load(self, name: str) -> str:
        """
        Returns the source text of a template.

        Raises:
            TemplateNotFoundError: Unknown template name
            TemplateLoadError: TemplateLoadFailed when the source cannot be read
        """
        ...


class DictLoader:
    """Templates held in memory, keyed by name."""

    def __init__(self, templates: Mapping[str, str]):
        self.templates = dict(templates)

    def load(self, name: str) -> str:
        try:
            return self.templates[name]
        except KeyError:
            raise TemplateNotFoundError(name) from None


class FunctionLoader:
    """
    Delegates to a callable name -> source.

    A None result or KeyError means the template does not exist;
    OSError means it exists but could not be read.
    """

    def __init__(self, load_fn: Callable[[str], Optional[str]]):
        self.load_fn = load_fn

    def load(self, name: str) -> str:
        try:
            source = self.load_fn(name)
        except KeyError:
            raise TemplateNotFoundError(name) from None
        except OSError as e:
            raise TemplateLoadError(ErrorCode.TEMPLATE_LOAD_FAILED, f"'{name}': {e}") from e
        if source is None:
            raise TemplateNotFoundError(name)
        return source


class FileSystemLoader:
    """
    Loads templates from one or more directories.

    The first search path holding a file named NAME + one of the extensions
    wins. Names that resolve outside their search path are rejected.
    """

    def __init__(
        self,
        search_paths: Union[str, Path, Iterable[Union[str, Path]]],
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
        encoding: str = "utf-8",
    ):
        if isinstance(search_paths, (str, Path)):
            search_paths = [search_paths]
        self.search_paths = [Path(p) for p in search_paths]
        self.extensions = tuple(extensions)
        self.encoding = encoding

    def find(self, name: str) -> Optional[Path]:
        """Path of the template file, or None."""
        if "\x00" in name:
            logger.debug(f"Template name {name!r} contains a NUL byte")
            return None
        for root in self.search_paths:
            base = root.resolve()
            for ext in self.extensions:
                candidate = (base / f"{name}{ext}").resolve()
                if not candidate.is_relative_to(base):
                    logger.debug(f"Template name '{name}' escapes search path {base}")
                    break
                if candidate.is_file():
                    return candidate
        return None

    def load(self, name: str) -> str:
        path = self.find(name)
        if path is None:
            raise TemplateNotFoundError(name)
        try:
            source = path.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise TemplateLoadError(ErrorCode.TEMPLATE_LOAD_FAILED, f"'{name}': {e}") from e
        logger.debug(f"Loaded template '{name}' from {path}")
        return source


__all__ = ["Loader", "DictLoader", "FunctionLoader", "FileSystemLoader", "DEFAULT_EXTENSIONS"]

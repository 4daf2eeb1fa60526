from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import EngineConfig, create_engine, load_config
from .engine import Engine
from .errors import TemplateError
from .jsonic import dumps as jdumps
from .lexer import tokenize_template
from .version import tool_version


def _setup_logging() -> None:
    """TWIGLET_DEBUG=1 turns on DEBUG logging to stderr."""
    level = logging.DEBUG if os.environ.get("TWIGLET_DEBUG") else logging.WARNING
    logging.basicConfig(level=level, format="[%(levelname)s] %(name)s: %(message)s", stream=sys.stderr)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="twiglet",
        description="Twig-style template renderer",
        add_help=True,
    )
    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {tool_version()}")
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("name", help="template name, resolved against the template directories")
        sp.add_argument(
            "-t", "--template-dir",
            action="append",
            metavar="DIR",
            help="template directory (repeatable; default: current directory)",
        )
        sp.add_argument(
            "--config",
            metavar="FILE.yaml",
            help="engine configuration (template_dirs, extensions, limits)",
        )

    sp_render = sub.add_parser("render", help="Render a template to stdout")
    add_common(sp_render)
    sp_render.add_argument(
        "-c", "--context",
        metavar="FILE.json|-",
        help="JSON object to render against; '-' reads stdin",
    )
    sp_render.add_argument(
        "--var",
        action="append",
        metavar="KEY=VALUE",
        help="context variable; VALUE is parsed as JSON when possible (repeatable)",
    )

    sp_check = sub.add_parser("check", help="Parse a template and its extends chain (JSON summary)")
    add_common(sp_check)

    sp_tokens = sub.add_parser("tokens", help="Token stream of a template (JSON)")
    add_common(sp_tokens)

    return p


def _engine(ns: argparse.Namespace) -> Engine:
    config = load_config(Path(ns.config)) if ns.config else EngineConfig()
    if ns.template_dir:
        config = config.with_template_dirs(ns.template_dir)
    if not config.template_dirs:
        config = config.with_template_dirs(["."])
    return create_engine(config)


def _read_context(context_arg: Optional[str]) -> Dict[str, Any]:
    """
    Reads the --context JSON.

    Supports:
    - file path: context.json
    - stdin: -
    """
    if not context_arg:
        return {}

    if context_arg == "-":
        text = sys.stdin.read()
    else:
        path = Path(context_arg)
        if not path.is_file():
            raise ValueError(f"Context file not found: {path}")
        text = path.read_text(encoding="utf-8")

    data = json.loads(text) if text.strip() else {}
    if not isinstance(data, dict):
        raise ValueError(f"Context must be a JSON object, got {type(data).__name__}")
    return data


def _parse_vars(specs: Optional[List[str]]) -> Dict[str, Any]:
    """Parses 'key=value' pairs; values that are valid JSON are decoded."""
    result: Dict[str, Any] = {}
    for spec in specs or []:
        if "=" not in spec:
            raise ValueError(f"Invalid variable '{spec}'. Expected 'key=value'")
        key, raw = spec.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Invalid variable '{spec}': empty key")
        try:
            result[key] = json.loads(raw)
        except json.JSONDecodeError:
            result[key] = raw
    return result


def _check(engine: Engine, name: str) -> Dict[str, Any]:
    template = engine.load_template(name)
    chain = []
    blocks = set(template.blocks)
    macros = set(template.macros)
    current = template
    while current.extends is not None:
        chain.append(current.extends)
        current = engine.load_template(current.extends)
        blocks.update(current.blocks)
        macros.update(current.macros)
    # full resolution surfaces include/import/cycle errors
    engine.merge(name)
    return {
        "template": name,
        "extends": chain,
        "blocks": sorted(blocks),
        "macros": sorted(macros),
    }


def main(argv: list[str] | None = None) -> int:
    _setup_logging()
    ns = _build_parser().parse_args(argv)

    try:
        engine = _engine(ns)

        if ns.cmd == "render":
            context = _read_context(ns.context)
            context.update(_parse_vars(ns.var))
            sys.stdout.write(engine.render(ns.name, context))
            return 0

        if ns.cmd == "check":
            sys.stdout.write(jdumps(_check(engine, ns.name), indent=2) + "\n")
            return 0

        if ns.cmd == "tokens":
            tokens = tokenize_template(engine.loader.load(ns.name))
            data = [{"type": t.type.name, "value": t.value, "line": t.line} for t in tokens]
            sys.stdout.write(jdumps(data, indent=2) + "\n")
            return 0

    except TemplateError as e:
        sys.stderr.write(str(e).rstrip() + "\n")
        return 2
    except ValueError as e:
        sys.stderr.write(str(e).rstrip() + "\n")
        return 2

    return 2


if __name__ == "__main__":
    raise SystemExit(main())

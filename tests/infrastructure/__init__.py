"""
Shared test infrastructure.

Modules:
- file_utils: Utilities for creating template files and directories
- rendering_utils: Engine builders and render shortcuts
- cli_utils: Running the CLI in a subprocess
"""

from .file_utils import write, write_text_file, write_templates
from .rendering_utils import CountingLoader, make_engine, render_source, render_template
from .cli_utils import run_cli, jload

__all__ = [
    # File utilities
    "write", "write_text_file", "write_templates",

    # Rendering utilities
    "CountingLoader", "make_engine", "render_source", "render_template",

    # CLI utilities
    "run_cli", "jload",
]

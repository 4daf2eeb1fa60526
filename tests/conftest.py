import textwrap
from pathlib import Path

import pytest

from tests.infrastructure.file_utils import write, write_templates


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """Small template directory: layout, page extending it, partial and macro library."""
    root = tmp_path / "templates"
    write_templates(root, {
        "base.html": textwrap.dedent("""\
            <title>{% block title %}Site{% endblock %}</title>
            {% block content %}{% endblock %}
            """),
        "page.html": textwrap.dedent("""\
            {% extends "base.html" %}
            {% block title %}{{ title }} - {% parent %}{% endblock %}
            {% block content %}{% include "partials/nav.html" %}{{ body }}{% endblock %}
            """),
        "partials/nav.html": "[nav]",
        "macros.twig": '{% macro badge(text) %}<b>{{ text }}</b>{% endmacro %}',
    })
    return root


@pytest.fixture
def context_file(tmp_path: Path) -> Path:
    return write(tmp_path / "context.json", '{"title": "Home", "body": "Welcome"}')

import os

import django
import pytest

from strand import Context, run

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "playground.settings")
django.setup()


@pytest.fixture
def execute(capsys):
    """Run a script; return (printed lines, error, context)."""

    def _execute(code):
        context = Context("<test>")
        _, error = run("<test>", code, context)
        out = capsys.readouterr().out
        return out.splitlines(), error, context

    return _execute

"""sneakergit CLI — carry git history between offline machines."""

from ._helpers import main  # noqa: F401 — entry point

# Import command modules to register Click commands with the main group.
from . import _bundle  # noqa: F401

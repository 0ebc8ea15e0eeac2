"""Console script for ``sneakergit``.

The library (``create_bundle``/``apply_bundle``) needs only dulwich and the
git executable; the command line also needs click, shipped as the ``cli``
extra.
"""

import sys


def main():
    try:
        from .cli import main as cli_main
    except ImportError:
        print(
            "Error: 'sneakergit create-bundle' and 'apply-bundle' need click.\n"
            "Install the command line with:  pip install 'sneakergit[cli]'",
            file=sys.stderr,
        )
        raise SystemExit(1)
    cli_main()

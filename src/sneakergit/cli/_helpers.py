"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

from contextlib import contextmanager

import click

from ..exceptions import MergeConflictError, SneakergitError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _progress_cb(ctx):
    """Return a progress callback if verbose mode is on, else None."""
    if not ctx.obj.get("verbose"):
        return None

    def _on_progress(msg):
        click.echo(msg, err=True)
    return _on_progress


@contextmanager
def _library_errors():
    """Turn library errors into one-line click errors (exit status 1)."""
    try:
        yield
    except MergeConflictError as exc:
        raise click.ClickException(
            f"{exc}\nResolve the conflicts and commit, or run 'git merge --abort'."
        )
    except SneakergitError as exc:
        raise click.ClickException(str(exc))


def _path_arguments(f):
    """Shared REPO_PATH / USB_PATH positional arguments."""
    f = click.argument(
        "usb_path", envvar="SNEAKERGIT_MEDIUM",
        type=click.Path(exists=True, file_okay=False),
    )(f)
    f = click.argument(
        "repo_path", envvar="SNEAKERGIT_REPO",
        type=click.Path(exists=True, file_okay=False),
    )(f)
    return f


def _dry_run_option(f):
    """Shared --dry-run / -n flag."""
    return click.option(
        "-n", "--dry-run", is_flag=True, default=False,
        help="Show what would be done without writing anything.",
    )(f)


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

class _Group(click.Group):
    """Click group that exits with status 1 on usage errors."""

    def make_context(self, info_name, args, parent=None, **extra):
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as exc:
            exc.exit_code = 1
            raise

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except click.UsageError as exc:
            exc.exit_code = 1
            raise


@click.group(cls=_Group)
@click.option("-v", "--verbose", is_flag=True, help="Verbose output on stderr.")
@click.pass_context
def main(ctx, verbose):
    """sneakergit — move git history between offline machines.

    One machine writes a verifiable bundle to a USB drive (or any transfer
    directory); the other verifies it and merges it.

    \b
    Quick start:
      sneakergit create-bundle ~/src/project /media/usb
      sneakergit apply-bundle  ~/src/project /media/usb

    \b
    Commands:
      create-bundle    Bundle new commits (or a squashed snapshot)
      apply-bundle     Verify and merge the bundle on the medium
      status           Show bundle and watermark state

    \b
    Set SNEAKERGIT_REPO / SNEAKERGIT_MEDIUM to default the two paths.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

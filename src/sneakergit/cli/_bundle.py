"""create-bundle, apply-bundle and status commands."""

from __future__ import annotations

import json

import click

from ..bundle import ArtifactKind, apply_bundle, create_bundle, transfer_status
from ..squash import DEFAULT_SQUASH_MESSAGE
from ._helpers import (
    main,
    _dry_run_option,
    _library_errors,
    _path_arguments,
    _progress_cb,
    _status,
)


# ---------------------------------------------------------------------------
# create-bundle
# ---------------------------------------------------------------------------

@main.command("create-bundle")
@_path_arguments
@click.option("--squash", "squash_message", is_flag=False, flag_value=DEFAULT_SQUASH_MESSAGE,
              default=None, metavar="[MESSAGE]",
              help="Bundle the work tree as one commit with no history. "
                   f"MESSAGE defaults to '{DEFAULT_SQUASH_MESSAGE}'.")
@_dry_run_option
@click.pass_context
def create_bundle_cmd(ctx, repo_path, usb_path, squash_message, dry_run):
    """Create a bundle of REPO_PATH on USB_PATH.

    The first bundle holds all history; later ones only the commits made
    since the previous bundle.  With --squash the bundle holds a single
    commit of the current work tree, and the incremental state is left
    untouched.
    """
    squash = squash_message is not None
    with _library_errors():
        report = create_bundle(
            repo_path, usb_path,
            squash=squash,
            message=squash_message or DEFAULT_SQUASH_MESSAGE,
            dry_run=dry_run,
            progress=_progress_cb(ctx),
        )
    if dry_run:
        what = "squashed snapshot" if squash else str(report.range)
        click.echo(f"Would bundle {what} to {report.path}")
        return
    if report.watermark_written:
        _status(ctx, f"Watermark: {report.commit}")
    click.echo(f"Bundle created at {report.path}")


# ---------------------------------------------------------------------------
# apply-bundle
# ---------------------------------------------------------------------------

@main.command("apply-bundle")
@_path_arguments
@click.pass_context
def apply_bundle_cmd(ctx, repo_path, usb_path):
    """Verify the bundle on USB_PATH and merge it into REPO_PATH."""
    with _library_errors():
        report = apply_bundle(repo_path, usb_path, progress=_progress_cb(ctx))
    if report.kind is ArtifactKind.SQUASH:
        _status(ctx, f"Merged squashed snapshot {report.ref}")
    else:
        _status(ctx, f"Merged {report.ref}")
    click.echo("Bundle applied successfully")


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------

def _short(sha):
    return sha[:7] if sha else "(none)"


@main.command("status")
@_path_arguments
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON.")
@click.pass_context
def status_cmd(ctx, repo_path, usb_path, as_json):
    """Show the bundle and watermark kept on USB_PATH for REPO_PATH."""
    with _library_errors():
        st = transfer_status(repo_path, usb_path)
    if as_json:
        click.echo(json.dumps({
            "name": st.name,
            "bundle": st.artifact_path,
            "bundle_exists": st.artifact_exists,
            "watermark": st.watermark,
            "head": st.head,
            "branch": st.branch,
            "watermark_is_ancestor": st.watermark_is_ancestor,
            "pending": st.pending,
        }, indent=2))
        return
    click.echo(f"name:       {st.name}")
    click.echo(f"bundle:     {st.artifact_path} ({'present' if st.artifact_exists else 'missing'})")
    click.echo(f"watermark:  {_short(st.watermark)}")
    click.echo(f"head:       {_short(st.head)} on {st.branch or '(detached)'}")
    if st.watermark_is_ancestor is False:
        click.echo("warning:    watermark is not an ancestor of HEAD; "
                   "delete the watermark file to force a full bundle")
    click.echo(f"pending:    {'yes' if st.pending else 'no'}")

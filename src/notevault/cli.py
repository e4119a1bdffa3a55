#!/usr/bin/env python3
"""
nv: CLI for notevault

Usage:
    nv resolve "Project X"          # Resolve a query to a note
    nv find "term"                  # Find notes by content or file name
    nv tags project                 # Find tag occurrences
    nv backlinks "Project X"        # Find links to a note
    nv rename new-id --dry-run      # Rename a note and rewrite references
"""

from __future__ import annotations

import difflib
import json
import sys
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, NoReturn

import click
from click.exceptions import ClickException, UsageError

from . import __version__ as NOTEVAULT_VERSION

if TYPE_CHECKING:
    from .client import Client
    from .note import Note


# ─────────────────────────────────────────────────────────────────────────────
# Output Formatting
# ─────────────────────────────────────────────────────────────────────────────


def output(data, as_json: bool = False):
    """Output data as JSON or formatted text."""
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(data)


def _note_to_dict(client: Client, note: Note) -> dict[str, Any]:
    rel_path = client.vault_relative_path(note.path) if note.path is not None else None
    return {
        "id": note.id,
        "title": note.display_name(),
        "aliases": note.aliases,
        "tags": note.tags,
        "path": rel_path or (str(note.path) if note.path else None),
    }


def _note_line(client: Client, note: Note) -> str:
    data = _note_to_dict(client, note)
    return f"{data['id']}  {data['path']}"


# ─────────────────────────────────────────────────────────────────────────────
# Error Handling
# ─────────────────────────────────────────────────────────────────────────────


def _handle_error(ctx: click.Context, error: Exception, exit_code: int = 1) -> NoReturn:
    """Report an error as text, or as JSON when --json-errors is enabled."""
    from .errors import NotevaultError, error_code_for, format_error_json

    json_errors = ctx.obj.get("json_errors", False) if ctx.obj else False

    if isinstance(error, NotevaultError):
        if json_errors:
            click.echo(error.to_json(), err=True)
        else:
            click.echo(f"Error: {error.message}", err=True)
    elif json_errors:
        click.echo(format_error_json(error_code_for(error).value, str(error)), err=True)
    else:
        click.echo(f"Error: {error}", err=True)

    sys.exit(exit_code)


def get_error_code_for_exception(exc: Exception) -> str:
    """Map Click exceptions to error codes."""
    # MissingParameter subclasses BadParameter
    if isinstance(exc, click.MissingParameter):
        return "MISSING_ARGUMENT"
    elif isinstance(exc, click.BadParameter):
        return "INVALID_ARGUMENT"
    elif isinstance(exc, click.NoSuchOption):
        return "UNKNOWN_OPTION"
    elif isinstance(exc, UsageError):
        return "USAGE_ERROR"
    elif isinstance(exc, ClickException):
        return "CLI_ERROR"
    return "UNKNOWN_ERROR"


class JsonErrorGroup(click.Group):
    """Click group that formats usage errors as JSON when --json-errors is set.

    Also suggests the closest command name for typos.
    """

    def resolve_command(self, ctx, args):
        try:
            return super().resolve_command(ctx, args)
        except UsageError as e:
            cmd_name = args[0] if args else ""
            if cmd_name and "No such command" in str(e):
                matches = difflib.get_close_matches(cmd_name, self.list_commands(ctx), n=1, cutoff=0.6)
                if matches:
                    raise UsageError(f"No such command '{cmd_name}'. Did you mean '{matches[0]}'?")
            raise

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except ClickException as e:
            if ctx.params.get("json_errors"):
                from .errors import format_error_json

                click.echo(format_error_json(get_error_code_for_exception(e), e.format_message()), err=True)
                raise SystemExit(1)
            raise

    def main(
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        **extra: Any,
    ) -> Any:
        """Catch errors raised while parsing arguments, before invoke() runs.

        A --json-errors flag anywhere on the command line is moved to the
        front so Click treats it as the group option it is.
        """
        argv = list(args) if args is not None else list(sys.argv[1:])
        if "--json-errors" not in argv:
            return super().main(args, prog_name, complete_var, standalone_mode, **extra)

        from .errors import format_error_json

        argv = [a for a in argv if a != "--json-errors"]
        argv.insert(0, "--json-errors")

        try:
            return super().main(argv, prog_name, complete_var, standalone_mode=False, **extra)
        except ClickException as e:
            click.echo(format_error_json(get_error_code_for_exception(e), e.format_message()), err=True)
            raise SystemExit(1)
        except SystemExit:
            raise
        except Exception as e:
            click.echo(format_error_json("INTERNAL_ERROR", str(e)), err=True)
            raise SystemExit(1)


def _get_client(ctx: click.Context) -> Client:
    """Build the client for this invocation (cached on the context)."""
    if ctx.obj.get("client") is not None:
        return ctx.obj["client"]

    from .client import Client
    from .config import load_options

    options = load_options()
    client = Client(options)
    workspace = ctx.obj.get("workspace")
    if workspace:
        client.switch_workspace(workspace, lock=True)
    ctx.obj["client"] = client
    return client


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group(cls=JsonErrorGroup)
@click.version_option(version=NOTEVAULT_VERSION, prog_name="nv")
@click.option(
    "--json-errors",
    "json_errors",
    is_flag=True,
    help="Output errors as JSON (for programmatic use)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    envvar="NOTEVAULT_QUIET",
    help="Suppress warnings, show only errors and essential output",
)
@click.option("--workspace", "-w", envvar="NOTEVAULT_WORKSPACE", help="Workspace to use (default: first configured)")
@click.pass_context
def cli(ctx: click.Context, json_errors: bool, quiet: bool, workspace: str | None):
    """nv: resolve, search and rename notes in a markdown vault.

    \b
    Quick start:
      nv resolve "Project X"         # Which note does this refer to?
      nv find deployment             # Notes mentioning a term
      nv tags project                # Where is #project used?
      nv backlinks "Project X"       # Who links here?
      nv rename new-id --target old  # Rename and rewrite links
      nv today                       # Open/create today's daily note

    \b
    Configuration is read from NOTEVAULT_CONFIG, a .notevault.yaml in the
    current directory or a parent, ~/.config/notevault/config.yaml, or
    NOTEVAULT_VAULT for a single vault.
    """
    from ._logging import set_quiet_mode

    ctx.ensure_object(dict)
    ctx.obj["json_errors"] = json_errors
    ctx.obj["quiet"] = quiet
    ctx.obj["workspace"] = workspace

    if quiet:
        set_quiet_mode(True)


# ─────────────────────────────────────────────────────────────────────────────
# Resolution Commands
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("query")
@click.option("--timeout", type=float, default=None, help="Seconds to wait for the search")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def resolve(ctx: click.Context, query: str, timeout: float | None, as_json: bool):
    """Resolve a path, id, alias or title to a single note.

    \b
    Examples:
      nv resolve "Project X"
      nv resolve notes/foo.md
    """
    from .errors import NoteNotFoundError

    try:
        client = _get_client(ctx)
        note = client.resolve_note(query, timeout=timeout)
        if note is None:
            raise NoteNotFoundError(query)
    except Exception as e:
        _handle_error(ctx, e)

    if as_json:
        output(_note_to_dict(client, note), as_json=True)
    else:
        output(_note_line(client, note))


@cli.command()
@click.argument("term")
@click.option("--sort", is_flag=True, help="Sort by the configured sort key")
@click.option("--ignore-case", "-i", is_flag=True, help="Case-insensitive search")
@click.option("--include-templates", is_flag=True, help="Also search the templates folder")
@click.option("--timeout", type=float, default=None, help="Seconds to wait for the search")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def find(
    ctx: click.Context,
    term: str,
    sort: bool,
    ignore_case: bool,
    include_templates: bool,
    timeout: float | None,
    as_json: bool,
):
    """Find notes whose content or file name contains TERM."""
    from .client import SearchOpts

    opts = SearchOpts(sort=sort, ignore_case=ignore_case, include_templates=include_templates)
    try:
        client = _get_client(ctx)
        notes = client.find_notes(term, opts, timeout=timeout)
    except Exception as e:
        _handle_error(ctx, e)

    if as_json:
        output([_note_to_dict(client, n) for n in notes], as_json=True)
        return
    if not notes:
        click.echo("No notes found.")
        return
    for note in notes:
        click.echo(_note_line(client, note))


@cli.command()
@click.argument("terms", nargs=-1)
@click.option("--list", "list_only", is_flag=True, help="Only list distinct tag names")
@click.option("--timeout", type=float, default=None, help="Seconds to wait for the search")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def tags(ctx: click.Context, terms: tuple[str, ...], list_only: bool, timeout: float | None, as_json: bool):
    """Find tag occurrences (all tags when no TERMS are given).

    \b
    Examples:
      nv tags                   # Every tag occurrence
      nv tags project '#idea'   # Tags containing 'project' or 'idea'
      nv tags --list            # Distinct tag names
    """
    try:
        client = _get_client(ctx)
        if list_only:
            names = client.list_tags(terms[0] if terms else None, timeout=timeout)
        else:
            locations = client.find_tags(list(terms) or "", timeout=timeout)
    except Exception as e:
        _handle_error(ctx, e)

    if list_only:
        if as_json:
            output(names, as_json=True)
        else:
            for name in names:
                click.echo(name)
        return

    rows = [
        {
            "tag": loc.tag,
            "note": str(loc.note.id),
            "path": client.vault_relative_path(loc.path) or str(loc.path),
            "line": loc.line,
            "text": loc.text,
        }
        for loc in locations
    ]
    if as_json:
        output(rows, as_json=True)
        return
    for row in rows:
        click.echo(f"{row['path']}:{row['line']}  #{row['tag']}  {row['text']}")


@cli.command()
@click.argument("query")
@click.option("--timeout", type=float, default=None, help="Seconds to wait for the search")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def backlinks(ctx: click.Context, query: str, timeout: float | None, as_json: bool):
    """Find notes linking to the note QUERY resolves to."""
    from .errors import NoteNotFoundError

    try:
        client = _get_client(ctx)
        note = client.resolve_note(query, timeout=timeout)
        if note is None:
            raise NoteNotFoundError(query)
        results = client.find_backlinks(note, timeout=timeout)
    except Exception as e:
        _handle_error(ctx, e)

    if as_json:
        output(
            [
                {
                    "note": str(r.note.id),
                    "path": client.vault_relative_path(r.path) or str(r.path),
                    "matches": [m.model_dump() for m in r.matches],
                }
                for r in results
            ],
            as_json=True,
        )
        return
    if not results:
        click.echo(f"No backlinks to {note.id}.")
        return
    for result in results:
        rel_path = client.vault_relative_path(result.path) or result.path
        for match in result.matches:
            click.echo(f"{rel_path}:{match.line}  {match.text.strip()}")


@cli.command()
@click.argument("query")
@click.option("--style", type=click.Choice(["wiki", "markdown"]), default=None, help="Link style")
@click.option("--label", default=None, help="Link label (default: note title)")
@click.pass_context
def link(ctx: click.Context, query: str, style: str | None, label: str | None):
    """Print a link to the note QUERY resolves to."""
    from .errors import NoteNotFoundError

    try:
        client = _get_client(ctx)
        note = client.resolve_note(query)
        if note is None:
            raise NoteNotFoundError(query)
        click.echo(client.format_link(note, label=label, link_style=style))
    except Exception as e:
        _handle_error(ctx, e)


# ─────────────────────────────────────────────────────────────────────────────
# Mutating Commands
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("new_name")
@click.option("--target", "-t", default=None, help="Note to rename (path, id, alias or title)")
@click.option("--dry-run", is_flag=True, help="Report what would change without touching any file")
@click.option("--timeout", type=float, default=None, help="Seconds to wait for reference rewrites")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def rename(
    ctx: click.Context,
    new_name: str,
    target: str | None,
    dry_run: bool,
    timeout: float | None,
    as_json: bool,
):
    """Rename a note to NEW_NAME and rewrite every reference to it.

    NEW_NAME is a bare id (the note stays in its folder) or a vault-relative
    path ending in the new id.

    \b
    Examples:
      nv rename baz --target foo --dry-run
      nv rename archive/2024/foo --target foo

    Files are rewritten in place with no rollback. Commit your vault to
    version control, or run with --dry-run first.
    """
    from .rename import RenameEngine

    try:
        client = _get_client(ctx)
        result = RenameEngine(client).rename(new_name, target=target, dry_run=dry_run, timeout=timeout)
    except Exception as e:
        _handle_error(ctx, e)

    if as_json:
        output(result.model_dump(mode="json"), as_json=True)
        return
    if result.old_id == result.new_id:
        click.echo("Nothing to do.")
        return
    prefix = "Would rename" if dry_run else "Renamed"
    click.echo(f"{prefix} {result.old_id} -> {result.new_id}")
    verb = "would be replaced" if dry_run else "replaced"
    click.echo(f"{result.replacements} reference(s) {verb} across {result.files} file(s)")


@cli.command()
@click.argument("title", required=False)
@click.option("--id", "note_id", default=None, help="Note id (default: generated)")
@click.option("--dir", "directory", default=None, help="Directory for the note")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def new(ctx: click.Context, title: str | None, note_id: str | None, directory: str | None, as_json: bool):
    """Create a new note. The title is added as an alias."""
    try:
        client = _get_client(ctx)
        note = client.new_note(title, note_id, directory)
    except Exception as e:
        _handle_error(ctx, e)

    if as_json:
        output(_note_to_dict(client, note), as_json=True)
    else:
        click.echo(f"Created: {client.vault_relative_path(note.path) or note.path}")


@cli.command()
@click.option("--offset", type=int, default=0, help="Days from today (negative for the past)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def today(ctx: click.Context, offset: int, as_json: bool):
    """Open or create a daily note (today by default)."""
    try:
        client = _get_client(ctx)
        note = client.daily(offset) if offset else client.today()
    except Exception as e:
        _handle_error(ctx, e)

    if as_json:
        output(_note_to_dict(client, note), as_json=True)
    else:
        click.echo(str(note.path))


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def workspaces(ctx: click.Context, as_json: bool):
    """List configured workspaces."""
    from .workspace import Workspace

    try:
        client = _get_client(ctx)
        spaces = [Workspace.from_spec(spec, client.opts.vault_marker) for spec in client.opts.workspaces]
    except Exception as e:
        _handle_error(ctx, e)

    rows = [
        {"name": ws.name, "path": str(ws.path), "root": str(ws.root), "current": ws.name == client.workspace.name}
        for ws in spaces
    ]
    if as_json:
        output(rows, as_json=True)
        return
    for row in rows:
        marker = "*" if row["current"] else " "
        click.echo(f"{marker} {row['name']}  {row['root']}")


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def main():
    """Entry point for nv CLI."""
    from ._logging import configure_logging

    configure_logging()
    cli()


if __name__ == "__main__":
    main()

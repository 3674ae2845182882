"""Prompt Teams CLI: Typer app for inspecting configuration and running the demo."""

from __future__ import annotations

import asyncio
import json as json_mod
import traceback
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.table import Table

from promptteams import __version__

console = Console(stderr=True)

app = typer.Typer(
    name="promptteams",
    help=(
        "Prompt Teams: shared prompt libraries for teams.\n\n"
        "Membership, invitations and concurrent-safe ratings."
    ),
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    epilog=(
        "Examples:\n"
        "  promptteams config --check              Validate resolved settings\n"
        "  promptteams demo                        Run the Acme walkthrough\n"
        "  promptteams demo --store-path data.json Persist demo state to a file\n"
    ),
)


def _version_callback(value: bool) -> None:
    if value:
        from rich.panel import Panel
        c = Console()
        c.print(Panel(f"[bold]Prompt Teams[/bold] v{__version__}", border_style="blue"))
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-v", help="Show version and exit.",
        callback=_version_callback, is_eager=True,
    ),
) -> None:
    """Prompt Teams: shared prompt libraries for teams."""
    pass


# ── version ──────────────────────────────────────────────────────

@app.command()
def version() -> None:
    """Show Prompt Teams version, Python version, and platform."""
    import platform

    table = Table(show_header=False, border_style="blue", title="Prompt Teams", title_style="bold")
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("Python", platform.python_version())
    table.add_row("Platform", f"{platform.system()} {platform.machine()}")

    c = Console()
    c.print(table)


# ── config ───────────────────────────────────────────────────────

@app.command()
def config(
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="YAML settings file (default: $PROMPTTEAMS_CONFIG)."
    ),
    check: bool = typer.Option(False, "--check", help="Validate and exit non-zero on errors."),
    json_output: bool = typer.Option(False, "--json", help="Print settings as JSON."),
) -> None:
    """Show resolved settings (secrets masked).

    Example:
      promptteams config
      promptteams config --config promptteams.yaml --check
    """
    _run_safe(lambda: _config_impl(config_path, check, json_output))


def _config_impl(config_path: Optional[str], check: bool, json_output: bool) -> None:
    from promptteams.core.settings import load_settings

    settings = load_settings(config_path)
    out = Console()
    if json_output:
        out.print_json(json_mod.dumps(settings.to_dict()))
    else:
        table = Table(title="Settings", show_header=False, border_style="blue")
        table.add_column("Key", style="dim")
        table.add_column("Value")
        for key, value in settings.to_dict().items():
            table.add_row(key, str(value))
        out.print(table)

    if check:
        errors = settings.validate()
        if errors:
            console.print("[red]✗[/red] Config validation failed:")
            for err in errors:
                console.print(f"    - {err}")
            raise typer.Exit(code=1)
        console.print("[green]✓[/green] Config loaded and valid")


# ── demo ─────────────────────────────────────────────────────────

@app.command()
def demo(
    store_path: Optional[str] = typer.Option(
        None, "--store-path", help="Persist the demo store to this JSON file."
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the outcome as JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging and full tracebacks."),
) -> None:
    """Run the Acme walkthrough: create a team, invite, accept, rate.

    Example:
      promptteams demo
      promptteams demo --json
    """
    _run_safe(lambda: _demo_impl(store_path, json_output, verbose), verbose=verbose)


def _demo_impl(store_path: Optional[str], json_output: bool, verbose: bool) -> None:
    from promptteams.core.log_setup import configure_logging
    from promptteams.core.settings import load_settings

    overrides: Dict[str, Any] = {}
    if store_path:
        overrides["store_path"] = store_path
    # stderr stays quiet unless asked; the walkthrough itself is the output
    overrides["log_level"] = "DEBUG" if verbose else "WARNING"
    settings = load_settings(**overrides)
    configure_logging(settings, stream=console.file)

    outcome = asyncio.run(run_demo(settings))

    if json_output:
        Console().print_json(json_mod.dumps(outcome))
        return
    _print_demo(outcome)


async def run_demo(settings) -> Dict[str, Any]:
    """The end-to-end scenario; returns a JSON-safe summary."""
    from promptteams.core.models import Principal, Role
    from promptteams.core.service import PromptTeams

    alice = Principal(id="u_alice", display_name="Alice", email="alice@acme.test")
    bob = Principal(id="u_bob", display_name="Bob", email="Bob@Acme.test")

    pt = PromptTeams.in_memory(settings)

    await pt.sign_in(alice)
    team = await pt.create_team("Acme")
    invite = await pt.create_invitation(team.id, "  BOB@acme.test ", Role.MEMBER)

    await pt.sign_in(bob)
    pending = await pt.list_pending_invitations()
    accepted = await pt.accept_invitation(pending[0].id)

    await pt.sign_in(alice)
    prompt = await pt.create_prompt(team.id, "Summarize", "Summarize the text in 3 bullets.", ["writing"])
    await pt.submit_rating(prompt.id, 3)

    await pt.sign_in(bob)
    await pt.submit_rating(prompt.id, 5)
    await pt.toggle_favorite(prompt.id)
    await pt.increment_usage_counter(prompt.id, "copies")

    await pt.sign_in(alice)
    stats = await pt.submit_rating(prompt.id, 5)
    members = await pt.list_members(team.id)
    activities = await pt.list_activities(team.id)

    return {
        "team": {"id": team.id, "name": team.name, "owner_id": team.owner_id},
        "members": [m.to_dict() for m in members],
        "invitation": {
            "id": accepted.id,
            "email": accepted.email,
            "status": accepted.status.value,
            "link": invite.link,
            "email_sent": invite.email_sent,
            "email_error": invite.email_error,
        },
        "prompt": {"id": prompt.id, "title": prompt.title},
        "stats": stats.to_dict(),
        "activities": [a.type.value for a in activities],
    }


def _print_demo(outcome: Dict[str, Any]) -> None:
    out = Console()
    team = outcome["team"]
    out.print(f"\n[bold]Team:[/bold] {team['name']} ({team['id']})")

    members = Table(title="Members")
    members.add_column("Principal")
    members.add_column("Name")
    members.add_column("Role")
    for m in outcome["members"]:
        members.add_row(m["principal_id"], m["display_name"] or "", m["role"])
    out.print(members)

    inv = outcome["invitation"]
    out.print(f"[bold]Invitation:[/bold] {inv['email']} -> {inv['status']}")
    out.print(f"  Link: {inv['link']}")
    if not inv["email_sent"]:
        out.print(f"  [yellow]⚠[/yellow] Email not sent: {inv['email_error']}")

    stats = outcome["stats"]
    table = Table(title=f"Ratings: {outcome['prompt']['title']}")
    table.add_column("Stars", justify="right")
    table.add_column("Count", justify="right")
    for stars, count in stats["rating_histogram"].items():
        table.add_row(stars, str(count))
    out.print(table)
    out.print(
        f"  total={stats['total_ratings']} average={stats['average_rating']:.2f} "
        f"usage={stats['usage_counters']}"
    )
    out.print(f"[dim]Activity: {', '.join(outcome['activities'])}[/dim]\n")


def _run_safe(fn, verbose: bool = False) -> None:
    """Run a function with clean error handling."""
    from promptteams.core.errors import PromptTeamsError
    from promptteams.core.settings import ConfigError

    try:
        fn()
    except (SystemExit, typer.Exit):
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        raise SystemExit(130)
    except (PromptTeamsError, ConfigError) as e:
        console.print(f"\n[red bold]Error:[/red bold] {e}")
        if verbose:
            console.print(traceback.format_exc())
        raise SystemExit(2)
    except Exception as e:
        if verbose:
            console.print(f"\n[red bold]Error:[/red bold] {e}")
            console.print(traceback.format_exc())
        else:
            console.print(f"\n[red bold]Error:[/red bold] {e}")
            console.print("[dim]Run with --verbose for full traceback.[/dim]")
        raise SystemExit(1)

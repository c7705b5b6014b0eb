#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
agentmux: run coding agents in parallel, one git worktree and tmux window each.
Entry point for the command-line interface.
"""

import functools
import sys

import click
from rich.console import Console
from rich.table import Table

import commands
import window_status
from config import RuntimeContext, _config_dir
from error_handler import (
    AgentmuxError,
    ConfigError,
    GitCommandError,
    handle_configuration_error,
    handle_error,
    handle_git_error,
)
from logging_config import get_logger, log_exception, setup_logging
from models import StatusCommand

__version__ = "0.1.0"

logger = get_logger(__name__)


def reports_errors(func):
    """Print AgentmuxError as a one-line message and exit with status 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            result = func(*args, **kwargs)
        except ConfigError as e:
            info = handle_configuration_error(e)
        except GitCommandError as e:
            info = handle_git_error(e, click.get_current_context().info_name)
        except AgentmuxError as e:
            info = handle_error(e)
        else:
            return result
        click.echo(f"Error: {info.user_message}", err=True)
        sys.exit(1)
    return wrapper


@click.group()
@click.version_option(version=__version__, prog_name="agentmux")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output on stderr.")
@click.option("--log-file", is_flag=True, help="Also write logs under the agentmux config directory.")
@click.option("--log-json", is_flag=True, help="Write file logs as JSON lines.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, log_file: bool, log_json: bool) -> None:
    """agentmux: coding agents in parallel git worktrees and tmux windows."""
    runtime = RuntimeContext.from_environ(verbose=verbose)
    setup_logging(
        level="DEBUG" if verbose else "WARNING",
        log_to_file=log_file,
        json_format=log_json,
        log_dir=_config_dir(runtime) / "logs",
        pane=runtime.getenv("TMUX_PANE"),
    )
    ctx.obj = runtime


@cli.command("list")
@click.option("--pr", "show_pr", is_flag=True, help="Show pull request status (needs gh).")
@click.option("-a", "--all", "show_all", is_flag=True, help="Include worktrees without a tmux window.")
@click.pass_obj
@reports_errors
def list_command(runtime: RuntimeContext, show_pr: bool, show_all: bool) -> None:
    """List worktrees and their tmux windows."""
    repo_set, rows = commands.list_rows(show_all, show_pr, runtime)
    if not rows:
        click.echo("No worktrees found" if show_all else "No active worktrees found")
        return

    table = Table(box=None, header_style="bold", pad_edge=False)
    if repo_set.multi_repo:
        table.add_column("REPO", style="cyan", no_wrap=True)
    table.add_column("HANDLE", style="bold", no_wrap=True)
    table.add_column("BRANCH", style="yellow", no_wrap=True)
    table.add_column("STATE", no_wrap=True)
    if show_pr:
        table.add_column("PR", style="magenta", no_wrap=True)
    table.add_column("TMUX", no_wrap=True)
    table.add_column("PATH", style="dim", no_wrap=True)

    for row in rows:
        cells = [row.repo] if repo_set.multi_repo else []
        cells += [row.handle, row.branch, row.state]
        if show_pr:
            cells.append(row.pr)
        cells += [row.tmux, row.path]
        table.add_row(*cells)

    Console(soft_wrap=True).print(table)


@cli.command()
@click.argument("handle", required=False)
@click.argument("message", required=False)
@click.option("--pane-id", help="Send to this tmux pane (e.g. %12) when several agents match.")
@click.option("--repo", "repo_filter", help="Repository name or path, when handles collide.")
@click.option("--command", "as_command", is_flag=True, help="Send as a single-line agent command.")
@click.pass_obj
@reports_errors
def send(runtime: RuntimeContext, handle, message, pane_id, repo_filter, as_command) -> None:
    """Send MESSAGE (or stdin) to the agent pane of HANDLE."""
    text = commands.read_message(message, sys.stdin)
    commands.send(handle, text, pane_id, repo_filter, as_command, runtime)


@cli.command()
@click.argument("handle", required=False)
@click.option("--pane-id", help="Capture this tmux pane when several agents match.")
@click.option("--repo", "repo_filter", help="Repository name or path, when handles collide.")
@click.option("-n", "--lines", type=click.IntRange(min=0), default=200, show_default=True,
              help="Number of lines to capture.")
@click.option("--ansi", is_flag=True, help="Keep colors and other escape sequences.")
@click.pass_obj
@reports_errors
def capture(runtime: RuntimeContext, handle, pane_id, repo_filter, lines, ansi) -> None:
    """Print the recent output of the agent pane of HANDLE."""
    output = commands.capture(handle, pane_id, repo_filter, lines, ansi, runtime)
    click.echo(output, nl=False)


@cli.command()
@click.argument("name", required=False)
@click.option("--repo", "repo_filter", help="Repository name or path, when handles collide.")
@click.pass_obj
@reports_errors
def close(runtime: RuntimeContext, name, repo_filter) -> None:
    """Close the tmux window of a worktree; the worktree is kept."""
    message = commands.close(name, repo_filter, runtime)
    if message:
        click.echo(message)


@cli.command("resolve-ref")
@click.argument("branch", required=False)
@click.option("--base", help="Base branch for a new local branch.")
@click.option("--pr", "pr_number", type=int, help="Resolve the head branch of a pull request.")
@click.option("--name", "branch_name", help="Local branch name to use with --pr.")
@click.pass_obj
@reports_errors
def resolve_ref(runtime: RuntimeContext, branch, base, pr_number, branch_name) -> None:
    """Show how BRANCH (local, remote/branch or owner:branch) resolves."""
    if (branch is None) == (pr_number is None):
        raise click.UsageError("Pass exactly one of BRANCH or --pr.")

    if pr_number is not None:
        result = commands.resolve_pr(pr_number, branch_name, runtime)
        if result.pr is not None:
            click.echo(f"PR #{result.pr.number}: {result.pr.title}")
            click.echo(f"Author: {result.pr.author}")
            click.echo(f"Branch: {result.pr.head_ref_name}")
        click.echo(f"local: {result.local_branch}")
        click.echo(f"remote: {result.remote_branch}")
        return

    resolution = commands.resolve_ref(branch, base, runtime)
    click.echo(f"remote: {resolution.remote_ref or '-'}")
    click.echo(f"base: {resolution.local_base_name}")


@cli.command("set-window-status")
@click.argument("status", type=click.Choice([c.value for c in StatusCommand]))
@click.pass_obj
def set_window_status(runtime: RuntimeContext, status: str) -> None:
    """Show agent STATUS on the current tmux window. Always exits 0."""
    # runs from agent hooks; a failure here must not fail the hook
    try:
        window_status.set_window_status(StatusCommand(status), runtime)
    except Exception as e:
        log_exception(logger, f"set-window-status {status} failed: {e}", exc_info=runtime.verbose, status=status)


@cli.command()
@click.pass_obj
@reports_errors
def init(runtime: RuntimeContext) -> None:
    """Write an example .agentmux.yaml into the current directory."""
    path = commands.init(runtime)
    click.echo(f"✓ Created {path.name}")
    click.echo("\nThis file provides project-specific overrides.")
    click.echo("For global settings, edit ~/.config/agentmux/config.yaml")


if __name__ == "__main__":
    cli()

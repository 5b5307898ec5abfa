#!/usr/bin/env python3
"""
WhiteSalary Plugin CLI
---------------------------------
Submit plugins and inspect the shared plugin index without going through HTTP.
Usage:
    python manage.py plugin submit ./my_plugin
    python manage.py index list
    python manage.py index show my_plugin
"""

import asyncio
import json
import sys
from inspect import iscoroutinefunction, signature
from pathlib import Path

import httpx
from rich.console import Console
from rich.table import Table

from core.config import get_settings
from core.logging_config import configure_logging
from services.github_contents import GitHubContentsClient
from services.submission_service import SubmissionService, parse_submission
from utils.exceptions import SubmissionError

COMMANDS = {}
def command(category: str, name: str, description: str=None):
    """
    Decorator to auto-register CLI commands.
    Example:
        @command("index", "list", "List all plugins in plugins.json")
        async def list_index(): ...
    """
    def decorator(func):
        doc = (func.__doc__ or "").strip().splitlines()[0] if not description else description
        COMMANDS.setdefault(category, {})[name] = {
            "func": func,
            "description": doc,
        }
        return func
    return decorator


console = Console()


def show_help():
    for category, cmds in COMMANDS.items():
        table = Table(title=f"[bold]{category.capitalize()} Commands[/bold]", show_header=True, header_style="bold magenta")
        table.add_column("Command", style="cyan")
        table.add_column("Description", style="white")
        for name, meta in cmds.items():
            table.add_row(name, meta["description"])
        console.print(table)

    console.print("\n💡 Example:\n[green]python manage.py plugin submit ./my_plugin[/green]")


def load_plugin_dir(plugin_dir: Path) -> dict:
    """Read submission.json + plugin.py from a local plugin directory."""
    meta_path = plugin_dir / "submission.json"
    code_path = plugin_dir / "plugin.py"
    if not meta_path.exists() or not code_path.exists():
        raise FileNotFoundError(f"{plugin_dir} must contain submission.json and plugin.py")

    data = json.loads(meta_path.read_text(encoding="utf-8"))
    data["code"] = code_path.read_text(encoding="utf-8")
    return data


async def _with_service(func):
    settings = get_settings()
    settings.validate_required_vars()
    contents = GitHubContentsClient.from_settings(settings)
    try:
        return await func(SubmissionService(contents, settings))
    finally:
        await contents.close()


# ---------------------------
# Commands
# ---------------------------
@command("plugin", "submit", "Submit a local plugin directory")
async def submit_plugin(path: str):
    """Submit a local plugin directory"""
    try:
        submission = parse_submission(load_plugin_dir(Path(path)))
        message = await _with_service(lambda service: service.submit(submission))
    except (SubmissionError, FileNotFoundError, json.JSONDecodeError, httpx.HTTPError) as e:
        console.print(f"[red]❌ {e}[/red]")
        return 1

    console.print(f"[green]✅ {message}[/green]")
    return 0


@command("index", "list", "List all plugins in the index")
async def list_index():
    """List all plugins in the index"""
    try:
        index, sha = await _with_service(lambda service: service.read_index())
    except (SubmissionError, json.JSONDecodeError, httpx.HTTPError) as e:
        console.print(f"[red]❌ {e}[/red]")
        return 1

    table = Table(title=f"Plugin Index (updated {index.last_updated or 'never'})")
    table.add_column("ID", style="bold cyan")
    table.add_column("名称")
    table.add_column("Version", style="yellow")
    table.add_column("Author")
    table.add_column("Category")
    table.add_column("Downloads", justify="right")
    for p in index.plugins:
        table.add_row(
            str(p.get("id", "")),
            str(p.get("cn_name", "")),
            str(p.get("version", "")),
            str(p.get("author", "")),
            str(p.get("category", "")),
            str(p.get("downloads", 0)),
        )
    console.print(table)
    return 0


@command("index", "show", "Show one plugin entry from the index")
async def show_index_entry(plugin_id: str):
    """Show one plugin entry from the index"""
    try:
        index, sha = await _with_service(lambda service: service.read_index())
    except (SubmissionError, json.JSONDecodeError, httpx.HTTPError) as e:
        console.print(f"[red]❌ {e}[/red]")
        return 1

    entry = index.get_plugin(plugin_id)
    if entry is None:
        console.print(f"[yellow]⚠️ Plugin '{plugin_id}' is not in the index[/yellow]")
        return 1
    console.print_json(json.dumps(entry, ensure_ascii=False))
    return 0


async def main_dynamic(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv or argv[0] in ["help", "--help", "-h"]:
        show_help()
        return 0

    category = argv[0]
    cmd = argv[1] if len(argv) > 1 else None

    if category not in COMMANDS:
        console.print(f"[red]❌ Unknown category '{category}'[/red]")
        show_help()
        return 2

    if not cmd or cmd not in COMMANDS[category]:
        console.print(f"[yellow]⚠️ Unknown or missing command for category '{category}'[/yellow]")
        show_help()
        return 2

    func = COMMANDS[category][cmd]["func"]
    args = argv[2:]
    try:
        signature(func).bind(*args)
    except TypeError:
        console.print(f"[red]❌ Wrong arguments for '{category} {cmd}'[/red]")
        return 2

    if iscoroutinefunction(func):
        return await func(*args)
    return func(*args)


if __name__ == "__main__":
    settings = get_settings()
    configure_logging(settings.log_level, json_logs=False)
    try:
        sys.exit(asyncio.run(main_dynamic()))
    except KeyboardInterrupt:
        console.print("\n[red]Aborted by user.[/red]")
        sys.exit(130)

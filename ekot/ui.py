"""Terminal display helpers — tiles, status line, help."""
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import APP_VERSION

console = Console()


def print_header():
    console.print(
        f"\n  [bold cyan]♪  Ekot[/bold cyan]"
        f"  [dim]v{APP_VERSION} · Sveriges Radio[/dim]"
    )


def _tile(label: str, store: dict, playback: dict) -> str:
    broadcast = store["broadcasts"].get(label)
    if not broadcast:
        return f"[dim]{label}\n–[/dim]"

    marks = []
    if label == store.get("latest"):
        marks.append("[yellow]★[/yellow]")
    if label == playback.get("slot"):
        marks.append("[yellow]⏸[/yellow]" if playback.get("status") == "paused" else "[green]♫[/green]")
    mark = " ".join(marks)
    return f"[bold]{label}[/bold] {mark}\n[dim]{broadcast['title'][:28]}[/dim]"


def render_tiles(snapshot: dict) -> Table:
    """2x2 grid in the store's tile order (latest broadcast top-left)."""
    store = snapshot["store"]
    playback = snapshot["playback"]
    order = store["order"]

    table = Table(show_header=False, box=None, padding=(0, 3))
    table.add_column(width=34)
    table.add_column(width=34)
    for i in range(0, len(order), 2):
        table.add_row(*(_tile(label, store, playback) for label in order[i:i + 2]))
    return table


def print_tiles(snapshot: dict):
    console.print(Panel(
        render_tiles(snapshot),
        title=f"[bold cyan]Ekot[/bold cyan] [dim]{snapshot['store']['date']}[/dim]",
        border_style="cyan",
        expand=False,
        padding=(0, 1),
    ))


def print_status_line(playback: dict):
    """One-liner with the current broadcast and progress."""
    slot: Optional[str] = playback.get("slot")
    if not slot:
        console.print("  [dim]■ Ingen uppspelning[/dim]")
        return

    position = playback.get("position") or 0
    duration = playback.get("duration")
    if duration:
        bar_len = 20
        filled = min(bar_len, int(position / duration * bar_len))
        bar = "[green]" + "━" * filled + "[/green][dim]" + "·" * (bar_len - filled) + "[/dim]"
        progress = f"  {playback['elapsed_fmt']}/{playback['duration_fmt']} {bar}"
    else:
        progress = f"  {playback['elapsed_fmt']}"

    icon = "[yellow]⏸[/yellow]" if playback.get("status") == "paused" else "[green]♫[/green]"
    console.print(f"  {icon} Ekot {slot}{progress}")


def print_help():
    lines = [
        "  [bold]1-4[/bold]  play tile   [bold]Space[/bold]  play/pause   [bold]←→[/bold]  skip 15s",
        "  [bold]s[/bold]  stop   [bold]r[/bold]  refresh   [bold]q[/bold]  quit",
    ]
    console.print(Panel("\n".join(lines), border_style="dim", expand=False, padding=(0, 1)))


def print_message(message: str, is_error: bool = False):
    color = "red" if is_error else "yellow"
    console.print(f"  [{color}]{message}[/{color}]")

"""Rich console trace of API traffic."""

from typing import Any

from rich.console import Console

console = Console()


def log_api_call(method: str, payload: dict[str, Any]):
    """Successful API call made by the bot."""
    chat_id = payload.get("chat_id")
    target = f" → {chat_id}" if chat_id is not None else ""
    console.print(f"📤 [bold green]API[/] {method}{target}")


def log_api_error(method: str, error_code: int, description: str):
    """Rejected API call."""
    console.print(f"❌ [bold red]API {error_code}[/] {method}: {description}")


def log_update(update_id: int, kind: str):
    """Update delivered to the bot."""
    console.print(f"📩 [bold cyan]UPDATE[/] #{update_id} {kind}")


def log_clock(now: int, delta: int):
    console.print(f"⏱  [bold yellow]CLOCK[/] +{delta}s → {now}")

from typing import Optional

import typer
from rich import print
from rich.table import Table

from ai_newsletter.config.settings import get_settings
from ai_newsletter.db.database import get_engine, init_db
from ai_newsletter.services.run_ledger import RunLedger
from ai_newsletter.tools.lock import RunInProgress, RunLock
from ai_newsletter.tools.logging_setup import setup_logging
from ai_newsletter.workflows.run_newsletter import REQUIRED_KEYS, build_pipeline

app = typer.Typer(help="Daily AI news newsletter: discover, curate, deliver")


@app.callback()
def main() -> None:
    setup_logging(get_settings())


@app.command()
def doctor():
    """Check config + DB connectivity."""
    s = get_settings()
    print("[bold green]Config loaded[/bold green]")
    print("Model:", s.openai_model, "| Plunk:", s.plunk_base_url)
    print("Mode:", "broadcast" if s.broadcast_mode else f"single recipient ({s.recipient_email or 'unset'})")
    missing = s.missing(*REQUIRED_KEYS)
    if missing:
        print(f"[bold yellow]Missing keys[/bold yellow]: {', '.join(missing)}")
    init_db(get_engine(s.database_url))
    print("[bold green]DB OK[/bold green]")


@app.command()
def run(
    recipient: Optional[str] = typer.Option(None, help="Send to this address instead of RECIPIENT_EMAIL."),
    broadcast: Optional[bool] = typer.Option(None, "--broadcast/--single", help="Override PLUNK_BROADCAST_MODE."),
):
    """Run one newsletter pipeline execution."""
    s = get_settings()
    try:
        with RunLock(s.lock_path, s.lock_timeout_seconds):
            result = build_pipeline(s).run(recipient=recipient, broadcast=broadcast)
    except RunInProgress as e:
        print(f"[bold red]Run skipped[/bold red]: {e}")
        raise SystemExit(1)

    if result.success:
        print("[bold green]Run complete[/bold green]")
        print(result.to_dict())
    else:
        print(f"[bold red]Run failed[/bold red] ({result.stage}): {result.error}")
        raise SystemExit(1)


@app.command()
def runs(limit: int = typer.Option(10, help="How many recent runs to show.")):
    """List recent newsletter runs from the run ledger."""
    s = get_settings()
    engine = get_engine(s.database_url)
    init_db(engine)
    rows = RunLedger(engine).recent(limit)
    if not rows:
        print("[yellow]No runs recorded yet[/yellow]")
        return

    table = Table(title="Recent newsletter runs")
    for col in ("id", "started", "state", "mode", "items", "campaign"):
        table.add_column(col)
    for r in rows:
        state = f"{r.state} ({r.failed_stage})" if r.failed_stage else r.state
        table.add_row(
            str(r.id),
            r.started_at.strftime("%Y-%m-%d %H:%M") if r.started_at else "-",
            state,
            "broadcast" if r.broadcast else (r.recipient or "-"),
            str(r.item_count) if r.item_count is not None else "-",
            r.campaign_id or "-",
        )
    print(table)


@app.command()
def serve(host: str = "0.0.0.0", port: int = 8000):
    """Serve the HTTP API (subscribe, confirm, health, newsletter trigger)."""
    import uvicorn

    from ai_newsletter.api.app import create_app

    uvicorn.run(create_app(get_settings()), host=host, port=port)


if __name__ == "__main__":
    app()

import click
from flask.cli import AppGroup

from rentflow.services import deadline_watcher

deadlines_cli = AppGroup("deadlines", help="Payment window and archive sweeps.")


@deadlines_cli.command("sweep")
@click.option("--loop", is_flag=True, help="Keep sweeping every --interval seconds.")
@click.option("--interval", type=int, default=None, help="Seconds between sweeps (default from config).")
def sweep_command(loop: bool, interval: int | None):
    """Cancel unpaid approved rentals and archive old completed ones."""
    if loop:
        click.echo("Deadline watcher running, Ctrl+C to stop.")
        deadline_watcher.run_forever(interval_seconds=interval)
        return

    result = deadline_watcher.sweep()
    click.echo(
        f"cancelled={len(result['cancelled'])} archived={len(result['archived'])} errors={len(result['errors'])}"
    )

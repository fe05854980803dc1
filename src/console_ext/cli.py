"""CLI for console-ext.

Usage:
    console-ext init --phone +15550100 --webhook https://hooks.example.com/notify
    console-ext dashboard --port 8080
    console-ext test --dry-run
"""

import logging
from pathlib import Path
from typing import Any

import click
import structlog
import yaml
from prometheus_client import start_http_server

from console_ext.api import create_dashboard, run_dashboard
from console_ext.config import PRESETS, Config, ConfigError
from console_ext.logging import configure_logging
from console_ext.relay import NotificationRelay

# Configure structlog for CLI output
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)

log = structlog.get_logger()

DEFAULT_CONFIG_PATH = Path("console-ext.yaml")


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Config file path",
)
@click.option(
    "--preset",
    type=click.Choice(sorted(PRESETS)),
    default="default",
    show_default=True,
    help="Config preset to start from",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Path, preset: str, verbose: bool) -> None:
    """Relay critical log output to text, call, webhook and DataDog notifications."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["preset"] = preset
    ctx.obj["verbose"] = verbose


def load_config(ctx: click.Context, overrides: dict[str, Any] | None = None) -> Config:
    """Load the config file and apply command-line overrides that were given."""
    try:
        config = Config.from_file(ctx.obj["config_path"], preset=ctx.obj["preset"])
        changes = {k: v for k, v in (overrides or {}).items() if v is not None}
        return config.with_changes(changes) if changes else config
    except ConfigError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


@main.command()
@click.option(
    "--path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Where to write the config file (default: the --config path)",
)
@click.option("--phone", default="+1234567890", help="Phone number for notifications")
@click.option(
    "--webhook",
    default="https://your-webhook.com/notify",
    help="Webhook URL for notifications",
)
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def init(ctx: click.Context, path: Path | None, phone: str, webhook: str, force: bool) -> None:
    """Write a starter config file."""
    path = path or ctx.obj["config_path"]
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")

    data = {
        "phone_number": phone,
        "webhook_url": webhook,
        "enable_text": True,
        "enable_call": False,
        "rate_limit_max": 5,
        "rate_limit_window": 60000,
    }
    path.write_text("# console-ext configuration\n" + yaml.safe_dump(data, sort_keys=False))

    click.echo(f"Created {path}")
    click.echo("")
    click.echo("Next steps:")
    click.echo(f"  1. Update {path} with your real webhook URL and phone number")
    click.echo("  2. Run: console-ext dashboard")
    click.echo("  3. Visit: http://localhost:3000")


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Host to bind to")
@click.option(
    "--port",
    "-p",
    type=int,
    default=3000,
    envvar="CONSOLE_EXT_DASHBOARD_PORT",
    show_default=True,
    help="Dashboard port",
)
@click.option("--phone", help="Phone number for notifications")
@click.option("--webhook", help="Webhook URL for notifications")
@click.option(
    "--metrics-port",
    type=int,
    envvar="CONSOLE_EXT_METRICS_PORT",
    help="Also serve Prometheus metrics on this port",
)
@click.pass_context
def dashboard(
    ctx: click.Context,
    host: str,
    port: int,
    phone: str | None,
    webhook: str | None,
    metrics_port: int | None,
) -> None:
    """Run the stats and config dashboard."""
    config = load_config(ctx, {"phone_number": phone, "webhook_url": webhook})
    configure_logging("console-ext", "DEBUG" if ctx.obj["verbose"] else config.log_level)

    if metrics_port:
        start_http_server(metrics_port, addr=host)
        log.info("Metrics server listening", host=host, port=metrics_port)

    relay = NotificationRelay(config)
    app = create_dashboard(relay)

    click.echo(f"Dashboard running at http://{host}:{port}")
    click.echo("Press Ctrl+C to stop")
    try:
        run_dashboard(app, host=host, port=port)
    finally:
        relay.close()


@main.command("test")
@click.option("--phone", help="Phone number for notifications")
@click.option("--webhook", help="Webhook URL for notifications")
@click.option("--dry-run", is_flag=True, help="Go through the motions without sending anything")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for delivery")
@click.pass_context
def send_test(
    ctx: click.Context,
    phone: str | None,
    webhook: str | None,
    dry_run: bool,
    timeout: float,
) -> None:
    """Send a test critical error and a manual notification."""
    overrides: dict[str, Any] = {"phone_number": phone, "webhook_url": webhook}
    config = load_config(ctx, overrides)
    if dry_run:
        config = config.with_changes(
            {"enable_text": False, "enable_call": False, "webhook_url": None, "datadog_api_key": None}
        )

    sink = logging.getLogger("console_ext.test")

    with NotificationRelay(config) as relay:
        with relay.intercept(sink) as console:
            click.echo("Sending test error...")
            console.error("Test critical error from console-ext CLI")
            console.notify("Test manual notification from console-ext CLI")
            if not relay.flush(timeout):
                log.warning("Timed out waiting for deliveries", timeout=timeout)
        stats = relay.stats()

    click.echo("")
    click.echo("Test results:")
    click.echo(f"  Sent: {stats.sent}")
    click.echo(f"  Rate Limited: {stats.undelivered}")

    if dry_run:
        click.echo("")
        click.echo("This was a dry run - no notifications were sent")


if __name__ == "__main__":
    main()

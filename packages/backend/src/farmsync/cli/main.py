"""farmsync CLI — run the gateway, watch the realtime channel, drive caches.

Usage:
    farmsync gateway                          # Run the cache gateway (uvicorn)
    farmsync listen --farm-id F1              # Print realtime events for a farm
    farmsync message clear-cache              # Drop every cache bucket
    farmsync message cache-urls /a /b         # Prime the dynamic bucket
    farmsync message skip-waiting             # Activate a waiting gateway
    farmsync sync farm-data-sync              # Fire a background-sync tag
    farmsync buckets                          # List cache buckets
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from typing import Optional

import click
import httpx

from farmsync import __version__
from farmsync.config import settings
from farmsync.logging_config import configure_logging

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_GATEWAY_URL = "http://localhost:8080"


def _gateway_url() -> str:
    return os.environ.get("FARMSYNC_GATEWAY_URL", DEFAULT_GATEWAY_URL).rstrip("/")


def _client() -> httpx.Client:
    """HTTP client pointed at the running gateway's control API."""
    return httpx.Client(base_url=f"{_gateway_url()}/_gateway", timeout=30.0)


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _post_message(message: dict) -> None:
    with _client() as c:
        try:
            r = c.post("/messages", json=message)
        except httpx.ConnectError:
            click.secho(f"Error: gateway not reachable at {_gateway_url()}", fg="red", err=True)
            sys.exit(1)
    if r.status_code != 200:
        click.secho(f"Error: {r.status_code} {r.text}", fg="red", err=True)
        sys.exit(1)
    click.secho(f"{message['type']} accepted", fg="green")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="farmsync")
def main():
    """farmsync — realtime farm channel and offline cache gateway."""


# ---------------------------------------------------------------------------
# farmsync gateway
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: FARMSYNC_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: FARMSYNC_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def gateway(host: Optional[str], port: Optional[int], reload: bool):
    """Run the offline cache gateway."""
    import uvicorn

    configure_logging(settings.log_level)
    uvicorn.run(
        "farmsync.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# farmsync listen
# ---------------------------------------------------------------------------


@main.command()
@click.option("--farm-id", "-f", help="Farm to scope the channel to")
@click.option("--url", help="Realtime server URL (default: FARMSYNC_REALTIME_URL)")
@click.option("--token", envvar="FARMSYNC_AUTH_TOKEN", help="Bearer token")
@click.option("--sensor-type", "sensor_types", multiple=True, help="IoT sensor types to follow")
def listen(farm_id: Optional[str], url: Optional[str], token: Optional[str],
           sensor_types: tuple[str, ...]):
    """Connect to the realtime channel and print every event."""
    configure_logging(settings.log_level)
    sys.exit(asyncio.run(_listen_impl(farm_id, url, token, list(sensor_types))))


async def _listen_impl(farm_id: Optional[str], url: Optional[str], token: Optional[str],
                       sensor_types: list[str]) -> int:
    from farmsync.realtime import ChannelError, ChannelManager, Notifier
    from farmsync.realtime.events import SERVER_EVENTS

    manager = ChannelManager(url=url, token_provider=lambda: token or settings.auth_token)
    manager.add_observer(Notifier(sender=manager))

    def echo(event) -> None:
        click.echo(f"{click.style(event.event, fg='cyan')} "
                   f"{event.model_dump_json(by_alias=True, exclude={'event'})}")

    try:
        await manager.connect(farm_id)
    except ChannelError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        return 1

    for name in sorted(SERVER_EVENTS):
        manager.subscribe(name, echo)
    if farm_id and sensor_types:
        await manager.subscribe_to_iot(farm_id, sensor_types)
    if farm_id:
        await manager.request_farm_status(farm_id)

    click.secho(f"Listening{f' on farm {farm_id}' if farm_id else ''} — Ctrl+C to stop", bold=True)
    try:
        await manager.wait_closed()
    except ChannelError as e:
        click.secho(f"Connection lost: {e}", fg="red", err=True)
        return 1
    finally:
        await manager.disconnect()
    return 0


# ---------------------------------------------------------------------------
# farmsync message
# ---------------------------------------------------------------------------


@main.group()
def message():
    """Send a control message to a running gateway."""


@message.command("skip-waiting")
def skip_waiting():
    """Activate a waiting gateway immediately."""
    _post_message({"type": "SKIP_WAITING"})


@message.command("clear-cache")
def clear_cache():
    """Delete every cache bucket."""
    _post_message({"type": "CLEAR_CACHE"})


@message.command("cache-urls")
@click.argument("urls", nargs=-1, required=True)
def cache_urls(urls: tuple[str, ...]):
    """Fetch URLS into the dynamic bucket."""
    _post_message({"type": "CACHE_URLS", "payload": {"urls": list(urls)}})


# ---------------------------------------------------------------------------
# farmsync sync / buckets
# ---------------------------------------------------------------------------


@main.command()
@click.argument("tag", default=settings.sync_tag)
def sync(tag: str):
    """Fire background-sync TAG on the gateway."""
    with _client() as c:
        r = c.post(f"/sync/{tag}")
        r.raise_for_status()
    result = r.json()
    click.echo(f"Sync '{result['tag']}' notified {result['notified']} client(s)")


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def buckets(as_json: bool):
    """List cache buckets on the gateway."""
    with _client() as c:
        r = c.get("/buckets")
        r.raise_for_status()
    rows = r.json()
    if as_json:
        click.echo(_pretty_json(rows))
        return
    if not rows:
        click.echo("No cache buckets.")
        return
    for row in rows:
        marker = click.style("current", fg="green") if row["current"] else click.style("stale", fg="yellow")
        click.echo(f"  {row['name']:<36} {row['entries']:>6} entries  {marker}")


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
farmsync farm watcher — follow one farm's realtime channel.

Connects a ChannelManager scoped to a farm, prints alerts and sensor
readings, asks for the farm status, then switches to a second farm after
a minute to show the re-scoped subscriptions.
Run with: FARMSYNC_AUTH_TOKEN=... python examples/watch_farm.py FARM_ID [OTHER_FARM_ID]

Requires: pip install farmsync (or pip install -e . from the repo root)
Realtime server must be reachable at FARMSYNC_REALTIME_URL.
"""

import asyncio
import sys

from farmsync.logging_config import configure_logging
from farmsync.realtime import ChannelError, ChannelManager, Notifier
from farmsync.realtime.events import FarmAlert, FarmStatus, SensorData


async def watch(farm_id: str, other_farm_id: str | None) -> None:
    manager = ChannelManager()
    manager.add_observer(Notifier(sender=manager))

    def subscribe_all() -> None:
        manager.subscribe(FarmAlert, lambda a: print(f"  [alert/{a.severity}] {a.title}: {a.message}"))
        manager.subscribe(SensorData, lambda s: print(f"  [sensor] {s.type} = {s.value}{s.unit} ({s.status})"))
        manager.subscribe(FarmStatus, lambda s: print(f"  [status] {s.model_dump(by_alias=True)}"))

    print(f"Connecting to farm {farm_id}...")
    try:
        await manager.connect(farm_id)
    except ChannelError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    subscribe_all()
    await manager.subscribe_to_iot(farm_id, ["temperature", "soil_moisture"])
    await manager.request_farm_status(farm_id)
    print("Listening for 60s...")
    await asyncio.sleep(60)

    if other_farm_id:
        print(f"\nSwitching to farm {other_farm_id}...")
        # switch_farm drops subscriptions along with the old link
        await manager.switch_farm(other_farm_id)
        subscribe_all()
        await manager.request_farm_status(other_farm_id)
        await asyncio.sleep(60)

    await manager.disconnect()
    print("\nDone.")


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    configure_logging("WARNING")
    asyncio.run(watch(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None))


if __name__ == "__main__":
    main()

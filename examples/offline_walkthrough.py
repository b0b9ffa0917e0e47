#!/usr/bin/env python3
"""
farmsync offline walkthrough — prime, inspect and clear the gateway caches.

Checks gateway health → primes farm pages with CACHE_URLS → loads them
through the gateway → lists buckets → fires a background sync → clears.
Run with: python examples/offline_walkthrough.py

Requires: pip install httpx
Gateway must be running: farmsync gateway (http://localhost:8080)
"""

import sys

import httpx

BASE = "http://localhost:8080"

FARM_PAGES = ["/api/farms", "/livestock", "/crops"]


def main():
    client = httpx.Client(base_url=BASE, timeout=10)

    # ── Health check ──────────────────────────────────────────────
    print("Checking gateway health...")
    try:
        resp = client.get("/_gateway/health")
    except httpx.ConnectError:
        print(f"Gateway not reachable at {BASE}")
        print("Start it with:  farmsync gateway")
        sys.exit(1)
    health = resp.json()
    print(f"  Gateway: {health['gateway']}")
    print(f"  Storage: {'✓' if health['storage'] == 'ok' else '✗'}")

    # ── Prime the dynamic bucket ──────────────────────────────────
    print("\n1. Priming farm pages...")
    resp = client.post("/_gateway/messages", json={
        "type": "CACHE_URLS",
        "payload": {"urls": FARM_PAGES},
    })
    assert resp.status_code == 200, f"Failed: {resp.text}"
    print(f"   Sent CACHE_URLS for {len(FARM_PAGES)} page(s)")

    # ── Load through the gateway ──────────────────────────────────
    print("\n2. Loading pages through the gateway...")
    for path in FARM_PAGES:
        resp = client.get(path, headers={"Accept": "text/html"})
        print(f"   {path:<14} {resp.status_code}  {resp.headers.get('content-type', '-')}")

    # ── Buckets ───────────────────────────────────────────────────
    print("\n3. Cache buckets:")
    for bucket in client.get("/_gateway/buckets").json():
        marker = "current" if bucket["current"] else "stale"
        print(f"   {bucket['name']:<32} {bucket['entries']:>4} entries  ({marker})")

    # ── Background sync ───────────────────────────────────────────
    print("\n4. Firing background sync...")
    result = client.post("/_gateway/sync/farm-data-sync").json()
    print(f"   Notified {result['notified']} open page(s)")

    # ── Clear ─────────────────────────────────────────────────────
    print("\n5. Clearing caches...")
    resp = client.post("/_gateway/messages", json={"type": "CLEAR_CACHE"})
    assert resp.status_code == 200, f"Failed: {resp.text}"
    remaining = client.get("/_gateway/buckets").json()
    print(f"   Buckets left: {len(remaining)}")

    print("\nDone.")


if __name__ == "__main__":
    main()

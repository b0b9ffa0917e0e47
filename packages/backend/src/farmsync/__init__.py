"""farmsync — realtime channel and offline cache gateway for the farm manager.

Two independent pieces share this package:
- farmsync.realtime: one reconnecting WebSocket link to the farm realtime
  server, fanning typed events out to local subscribers.
- farmsync.gateway: a caching gateway in front of the farm web/API server
  that keeps pages working offline.
"""

__version__ = "0.1.0"

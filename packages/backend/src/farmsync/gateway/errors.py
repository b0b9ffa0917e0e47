"""Gateway fetch errors.

Learn: Only raw network failures are exceptions. "Offline and nothing
cached" for an API path is not an error here: it becomes a synthesized
503 response (see strategies.offline_api_response).
"""


class NetworkError(Exception):
    """The upstream could not be reached (no response at all)."""


class FetchTimeout(NetworkError):
    """The upstream did not answer in time."""


class AssetFetchFailure(NetworkError):
    """A static asset was neither cached nor fetchable."""

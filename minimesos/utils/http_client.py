"""Global HTTP client used for talking to REST APIs of cluster services."""

import typing as tp

import requests

from minimesos.utils import configuration

_session = None


def get_session() -> requests.Session:
    """Get a session object, JSON is the preferred response format."""
    global _session  # noqa: PLW0603

    if _session is None:
        _session = requests.Session()
        _session.headers.update({"Accept": "application/json"})
    return _session


def get_json(url: str, *, timeout: float = configuration.HTTP_TIMEOUT) -> tp.Any:
    """Return decoded JSON response of a GET request.

    Raises:
        requests.exceptions.RequestException: The request failed or returned error status.
        ValueError: The response is not a JSON document.
    """
    response = get_session().get(url, timeout=timeout)
    response.raise_for_status()
    return response.json()

"""Resolving content of a location given either as an absolute URI or as a file path."""

import io
import logging
import pathlib as pl
import typing as tp
import urllib.parse
import urllib.request

import requests

from minimesos.cluster import errors
from minimesos.utils import configuration
from minimesos.utils import http_client

LOGGER = logging.getLogger(__name__)

URL_SCHEMES = ("http", "https")


def _get_uri(location: str) -> urllib.parse.ParseResult | None:
    """Return parsed URI if the location is an absolute URI."""
    parsed = urllib.parse.urlparse(location)
    # Single letter "scheme" is a drive letter of a Windows path
    if len(parsed.scheme) < 2:
        return None
    return parsed


def _open_uri(location: str, uri: urllib.parse.ParseResult) -> tp.BinaryIO:
    if uri.scheme == "file":
        file_path = pl.Path(urllib.request.url2pathname(uri.path))
        try:
            return open(file_path, "rb")  # noqa: SIM115
        except OSError as exc:
            msg = f"Failed to open '{location}' as URL"
            raise errors.LocationError(msg) from exc

    if uri.scheme not in URL_SCHEMES:
        msg = f"Failed to open '{location}' as URL: unsupported scheme '{uri.scheme}'"
        raise errors.LocationError(msg)

    try:
        response = http_client.get_session().get(
            location, timeout=configuration.HTTP_DEPLOY_TIMEOUT
        )
        response.raise_for_status()
    except requests.exceptions.RequestException as exc:
        msg = f"Failed to open '{location}' as URL"
        raise errors.LocationError(msg) from exc

    return io.BytesIO(response.content)


def get_input_stream(location: str, *, host_dir: pl.Path | None = None) -> tp.BinaryIO | None:
    """Return stream with content of the location, or `None` if the location doesn't exist.

    The location is either an absolute URI, or a path to a file. Relative paths are looked up
    in the current working directory first and in the host directory second.

    An existing location that cannot be read (e.g. URL returning 404) is an error.
    """
    if not location:
        return None

    uri = _get_uri(location)
    if uri is not None:
        return _open_uri(location=location, uri=uri)

    file_path = pl.Path(location).expanduser()
    if not file_path.exists():
        file_path = (host_dir or configuration.HOST_DIR) / location
    if not file_path.is_file():
        LOGGER.debug(f"Location '{location}' doesn't exist.")
        return None

    try:
        return open(file_path, "rb")  # noqa: SIM115
    except OSError as exc:
        msg = f"Failed to open '{file_path.absolute()}' file"
        raise errors.LocationError(msg) from exc


def read_location(location: str, *, host_dir: pl.Path | None = None) -> bytes | None:
    """Return content of the location, or `None` if the location doesn't exist."""
    stream = get_input_stream(location, host_dir=host_dir)
    if stream is None:
        return None
    with stream:
        return stream.read()

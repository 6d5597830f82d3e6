import argparse
import contextlib
import pathlib as pl
import secrets
import signal
import typing as tp
import uuid


@contextlib.contextmanager
def ignore_interrupt() -> tp.Iterator[None]:
    """Ignore the KeyboardInterrupt signal."""
    orig_handler = None
    try:
        orig_handler = signal.signal(signal.SIGINT, signal.SIG_IGN)
    except ValueError as exc:
        if "signal only works in main thread" not in str(exc):
            raise

    if orig_handler is None:
        yield
        return

    try:
        yield
    finally:
        signal.signal(signal.SIGINT, orig_handler)


def get_rand_id() -> str:
    """Return random non-negative integer encoded as a string.

    >>> get_rand_id().isdigit()
    True
    """
    return str(secrets.randbelow(2**32))


def get_instance_token() -> str:
    """Return random token identifying a single container instance.

    The token must not contain the `-` character, as it is a part of container name.

    >>> "-" in get_instance_token()
    False
    """
    return uuid.uuid4().hex


def check_dir_arg(dir_path: str) -> pl.Path | None:
    """Check that the dir passed as argparse parameter is a valid existing dir."""
    if not dir_path:
        return None
    abs_path = pl.Path(dir_path).expanduser().resolve()
    if not (abs_path.exists() and abs_path.is_dir()):
        msg = f"check_dir_arg: directory '{dir_path}' doesn't exist"
        raise argparse.ArgumentTypeError(msg)
    return abs_path


def check_positive_int_arg(value: str) -> int:
    """Check that the value passed as argparse parameter is a positive integer."""
    try:
        num = int(value)
    except ValueError as exc:
        msg = f"check_positive_int_arg: '{value}' is not an integer"
        raise argparse.ArgumentTypeError(msg) from exc
    if num <= 0:
        msg = f"check_positive_int_arg: '{value}' must be > 0"
        raise argparse.ArgumentTypeError(msg)
    return num

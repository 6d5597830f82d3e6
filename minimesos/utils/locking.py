import logging
import pathlib as pl

from filelock import FileLock

# Suppress messages from filelock
logging.getLogger("filelock").setLevel(logging.WARNING)

LOCK_TIMEOUT = 30


def registry_lock(path: str | pl.Path) -> FileLock:
    """Return lock guarding the cluster registry file.

    Multiple command line invocations (e.g. `up` in one terminal and `destroy` in another)
    can work with the same registry file at once.
    """
    return FileLock(f"{path}.lock", timeout=LOCK_TIMEOUT)

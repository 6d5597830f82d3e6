"""Cluster and framework configuration."""

import os
import pathlib as pl

LAUNCH_PATH = pl.Path.cwd()

# Directory on the host that is mapped into containers. It holds the cluster registry file
# and the agents sandboxes.
HOST_DIR = pl.Path(os.environ.get("MINIMESOS_HOST_DIR") or LAUNCH_PATH).expanduser().resolve()

# Used instead of container IP addresses in exported service URLs when host ports are exposed
DOCKER_HOST_IP = os.environ.get("DOCKER_HOST_IP") or ""

# Time to wait for a container (or the whole cluster) to get responsive, in seconds
DEFAULT_TIMEOUT = int(os.environ.get("MINIMESOS_TIMEOUT") or 60)
if DEFAULT_TIMEOUT <= 0:
    msg = f"Invalid MINIMESOS_TIMEOUT: {DEFAULT_TIMEOUT}"
    raise RuntimeError(msg)

POLL_INTERVAL = float(os.environ.get("MINIMESOS_POLL_INTERVAL") or 1)
if POLL_INTERVAL < 0:
    msg = f"Invalid MINIMESOS_POLL_INTERVAL: {POLL_INTERVAL}"
    raise RuntimeError(msg)

LOGGING_LEVELS = ("INFO", "WARNING", "ERROR")
DEFAULT_LOGGING_LEVEL = (os.environ.get("MINIMESOS_LOGGING_LEVEL") or "INFO").upper()
if DEFAULT_LOGGING_LEVEL not in LOGGING_LEVELS:
    msg = f"Invalid MINIMESOS_LOGGING_LEVEL: {DEFAULT_LOGGING_LEVEL}"
    raise RuntimeError(msg)

MESOS_IMAGE_TAG = os.environ.get("MINIMESOS_MESOS_IMAGE_TAG") or "0.25.0-0.2.70.ubuntu1404"

# Default name of the cluster configuration file
CLUSTER_CONFIG_FILE = "minimesosFile"

# Timeouts for REST calls to cluster services, in seconds
HTTP_TIMEOUT = 5
HTTP_DEPLOY_TIMEOUT = 30

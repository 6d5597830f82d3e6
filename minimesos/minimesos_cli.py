#!/usr/bin/env python3
"""Manage a local Mesos cluster running in Docker containers."""

import argparse
import logging
import sys

from minimesos.cluster import cluster_config
from minimesos.cluster import commands
from minimesos.cluster import errors
from minimesos.utils import configuration
from minimesos.utils import helpers

LOGGER = logging.getLogger(__name__)


def get_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Get command line arguments."""
    parser = argparse.ArgumentParser(description=(__doc__ or "").split("\n", maxsplit=1)[0])
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_up = subparsers.add_parser("up", help="Start a cluster.")
    parser_up.add_argument(
        "--exposed-host-ports",
        action="store_true",
        default=None,
        help="Expose the Mesos and Marathon UI ports on the host.",
    )
    parser_up.add_argument(
        "--marathon-image-tag",
        help="The tag of the Marathon Docker image.",
    )
    parser_up.add_argument(
        "--mesos-image-tag",
        help="The tag of the Mesos master and agent Docker images.",
    )
    parser_up.add_argument(
        "--zookeeper-image-tag",
        help="The tag of the ZooKeeper Docker image.",
    )
    parser_up.add_argument(
        "--timeout",
        type=helpers.check_positive_int_arg,
        help="Time to wait for the cluster to start, in seconds.",
    )
    parser_up.add_argument(
        "--num-agents",
        type=helpers.check_positive_int_arg,
        help="Number of agents to start.",
    )
    parser_up.add_argument(
        "--cluster-config",
        default=configuration.CLUSTER_CONFIG_FILE,
        help=(
            "Path or URI of the cluster configuration file "
            f"(default: {configuration.CLUSTER_CONFIG_FILE})."
        ),
    )

    subparsers.add_parser("destroy", help="Destroy the cluster.")
    subparsers.add_parser("info", help="Display cluster information.")
    subparsers.add_parser("ps", help="List containers of the cluster.")

    parser_state = subparsers.add_parser("state", help="Display state JSON of Mesos.")
    parser_state.add_argument(
        "--agent",
        default="",
        help="Container ID (or its prefix) of the agent, master state is displayed otherwise.",
    )

    parser_install = subparsers.add_parser("install", help="Install a Marathon app.")
    parser_install.add_argument(
        "marathon_file",
        help="Path or URI of the Marathon JSON app definition.",
    )

    parser_init = subparsers.add_parser("init", help="Write default cluster configuration.")
    parser_init.add_argument(
        "-d",
        "--dir",
        type=helpers.check_dir_arg,
        help="Directory to write the configuration file to (default: host dir).",
    )

    return parser.parse_args(argv)


def run_command(args: argparse.Namespace) -> None:
    if args.command == "up":
        config = cluster_config.with_overrides(
            commands.load_cluster_config(args.cluster_config),
            expose_ports=args.exposed_host_ports,
            timeout=args.timeout,
            num_agents=args.num_agents,
            mesos_image_tag=args.mesos_image_tag,
            zookeeper_image_tag=args.zookeeper_image_tag,
            marathon_image_tag=args.marathon_image_tag,
        )
        commands.up(config)
    elif args.command == "destroy":
        # Don't leave the cluster half destroyed
        with helpers.ignore_interrupt():
            commands.destroy()
    elif args.command == "info":
        commands.info()
    elif args.command == "state":
        commands.state(args.agent)
    elif args.command == "install":
        commands.install(args.marathon_file)
    elif args.command == "ps":
        commands.ps()
    elif args.command == "init":
        commands.init(args.dir)
    else:
        msg = f"Unknown command '{args.command}'"
        raise ValueError(msg)


def main(argv: list[str] | None = None) -> int:
    args = get_args(argv)
    logging.basicConfig(
        format="%(levelname)s:%(message)s",
        level=logging.DEBUG if args.debug else logging.INFO,
    )

    try:
        run_command(args)
    except errors.TeardownError as exc:
        LOGGER.error(str(exc))  # noqa: TRY400
        for err in exc.errors:
            LOGGER.error(f"  {err}")
        return 1
    except errors.MinimesosError as exc:
        LOGGER.error(str(exc))  # noqa: TRY400
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

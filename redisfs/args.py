"""Module defining the command-line arguments and providing a parser for them."""

from __future__ import annotations

import argparse
from typing import List, Optional

from redisfs.constants import MIN_REDIS_VERSION, VERSION


class Arguments(argparse.Namespace):
    """Parsed command-line arguments."""

    mountpoint: str

    config: str

    host: Optional[str]
    port: Optional[int]
    db: Optional[int]
    timeout: Optional[int]

    debug: bool
    single_threaded: bool

    @classmethod
    def parse(cls, args: Optional[List[str]] = None) -> Arguments:
        """
        Parse command-line arguments from the given list of strings.

        Defaults to sys.argv if none are specified.
        """
        return cls._get_parser().parse_args(args, namespace=cls())

    @classmethod
    def _get_parser(cls) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Mount the keys of a Redis database as files.",
            usage="redisfs [option...] mountpoint",
        )

        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {VERSION} (redis >= {MIN_REDIS_VERSION})",
            help="show the program version",
        )

        # Primary arguments
        parser.add_argument(
            "mountpoint", type=str, help="directory to mount the file system on"
        )

        # Path to (optional) config file
        parser.add_argument(
            "--config",
            type=str,
            help="path to config file (default is ~/.redisfs/config)",
            default="~/.redisfs/config",
        )

        # Redis server, defaults to the config file
        parser.add_argument("--host", type=str, help="redis server host")
        parser.add_argument("--port", type=cls._parse_positive, help="redis port")
        parser.add_argument("--db", type=int, help="redis database number")

        # Configure network timeout
        parser.add_argument(
            "--timeout",
            type=cls._parse_positive,
            help="timeout for redis connections and replies in milliseconds",
        )

        # Enable debug output for development
        parser.add_argument(
            "--debug", action="store_true", help="enable debug information"
        )

        # Handle file system calls from a single thread
        parser.add_argument(
            "--single-threaded",
            action="store_true",
            help="handle file system calls one at a time",
        )

        return parser

    @staticmethod
    def _parse_positive(arg: str) -> int:
        try:
            val = int(arg)
            assert val > 0
            return val
        except (ValueError, AssertionError):
            raise argparse.ArgumentTypeError("expected number > 0")

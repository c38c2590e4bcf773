"""Demo entry point: log a few records, optionally shipping them to a collector."""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

from shiplog.config import QueueConfig, RemoteConfig, load_config
from shiplog.logger import Logger
from shiplog.shutdown import ShutdownCoordinator


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="shiplog demo")
    parser.add_argument("--config", help="Path to a YAML config file")
    parser.add_argument("--level", help="Minimum level (debug, info, warn, error)")
    parser.add_argument("--service", help="Service tag added to every record")
    parser.add_argument("--remote-url", help="Collector endpoint to POST batches to")
    parser.add_argument("--queue-file", help="Path of the durable queue snapshot")
    return parser.parse_args(argv)


async def run(args) -> None:
    config = load_config(args.config)
    overrides = {}
    if args.level:
        overrides["level"] = args.level
    if args.service:
        overrides["service"] = args.service
    if args.remote_url:
        overrides["remote"] = RemoteConfig(url=args.remote_url)
    if args.queue_file:
        overrides["queue"] = replace(config.queue or QueueConfig(), file_path=args.queue_file)
    config = replace(config, **overrides)

    async with ShutdownCoordinator() as coordinator:
        logger = Logger(config, coordinator=coordinator)
        logger.debug("This should not log")
        logger.info("This should not log")
        logger.warn("This SHOULD log")
        logger.error("This ALSO logs", {"code": 500})
        logger.warn("Contact user@example.com about card 4111 1111 1111 1111")
        await logger.flush()
        if logger.shipper is not None:
            logging.getLogger(__name__).info("Shipper stats: %s", logger.shipper.stats())
        await logger.aclose()


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        stream=sys.stderr,
    )
    args = parse_args(argv)
    if args.level is None and args.config is None:
        args.level = "warn"
    if args.service is None and args.config is None:
        args.service = "auth-api"
    asyncio.run(run(args))


if __name__ == "__main__":
    main()

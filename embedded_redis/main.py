#!/usr/bin/env python3

import argparse
import logging
import sys

from .config import Settings
from .runner import Runner


def set_logging_config(tags, log_level_str=None):
    """Configure logging to output only to stderr."""
    handlers = [logging.StreamHandler(sys.stderr)]

    log_levels = {
        'critical': logging.CRITICAL,
        'error': logging.ERROR,
        'warning': logging.WARNING,
        'info': logging.INFO,
        'debug': logging.DEBUG,
    }

    log_level = log_levels.get(log_level_str)
    if log_level is None:
        logging.warning(f'Unknown log level {log_level_str}, setting info')
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format=f'[{tags} %(asctime)s %(levelname)8s] %(message)s',
        handlers=handlers,
    )


def main():
    parser = argparse.ArgumentParser(
        description='run a disposable redis server or sentinel topology',
    )
    parser.add_argument(
        "mode", help="what to run",
        type=str,
        choices=["server", "cluster"])
    parser.add_argument("--config", help="config file path", default='embedded_redis.yaml', type=str)
    parser.add_argument(
        "--executable", type=str, default=None,
        help="redis-server binary to use, overrides the config file",
    )
    parser.add_argument(
        "--log_level", type=str, default=None,
        help="log level, overrides the config file",
    )
    args = parser.parse_args()

    config = Settings()
    config.load(args.config)
    if args.executable:
        config.executable = args.executable
    if args.log_level:
        config.log_level = args.log_level
        config.validate_log_level()

    set_logging_config(f'embedded-redis {args.mode}', log_level_str=config.log_level)

    runner = Runner(config, args.mode)
    runner.run()


if __name__ == '__main__':
    main()

import argparse
import asyncio
import logging
import sys
import threading

from dbus_fast import BusType

from udiskr.core.action_handler import ActionHandler
from udiskr.core.coordinator import Coordinator
from udiskr.core.errors import UdiskrError
from udiskr.core.log_setup import default_log_file, setup_logging
from udiskr.core.mount_pipeline import MountPipeline
from udiskr.core.unmount_handler import UnmountHandler
from udiskr.shared.command_runner import CommandRunner
from udiskr.shared.config_handler import ConfigHandler
from udiskr.shared.dbus_helpers import NotificationsClient, UDisksClient, connect

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="udiskr",
        description="Mount removable block devices and report them as notifications.",
    )
    parser.add_argument("--config", help="path to config.toml")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="override the configured log level",
    )
    parser.add_argument(
        "--no-log-file", action="store_true", help="only log to standard error"
    )
    return parser.parse_args(argv)


def install_exception_hook(logger) -> None:
    def global_exception_handler(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logger.error(
            "Uncaught exception",
            exc_info=(exc_type, exc_value, exc_traceback),
            thread_name=threading.current_thread().name,
        )

    sys.excepthook = global_exception_handler


async def run(config: ConfigHandler, logger) -> None:
    """Connects to both buses, subscribes and runs until a stream dies."""
    system_bus = await connect(BusType.SYSTEM)
    udisks = UDisksClient(system_bus, config, logger)
    await udisks.ping()
    session_bus = await connect(BusType.SESSION)
    notifications = NotificationsClient(session_bus, config, logger)

    added = await udisks.interfaces_added()
    removed = await udisks.interfaces_removed()
    invoked = await notifications.action_invoked()

    coordinator = Coordinator(
        MountPipeline(udisks, notifications, config, logger),
        UnmountHandler(notifications, config, logger),
        ActionHandler(CommandRunner(config, logger), logger),
        logger,
    )
    logger.info("Watching for block devices...")
    await coordinator.run(added, removed, invoked)


def main(argv=None) -> None:
    args = parse_args(argv)
    # Console only until the config says whether a log file is wanted.
    logger = setup_logging(level=logging.INFO)
    install_exception_hook(logger)
    config = ConfigHandler(logger, config_file=args.config)
    level_name = args.log_level or str(
        config.get_root_setting(["logging", "level"], "INFO")
    ).upper()
    log_file = None
    if not args.no_log_file and config.get_root_setting(["logging", "log_file"], True):
        log_file = default_log_file()
    logger = setup_logging(
        level=getattr(logging, level_name, logging.INFO), log_file=log_file
    )
    install_exception_hook(logger)
    try:
        asyncio.run(run(config, logger))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
    except UdiskrError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()

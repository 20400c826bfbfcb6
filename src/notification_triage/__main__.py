"""Entry point for running the notification triage engine.

This module provides the command line entry point. It handles:
- Configuration loading
- Logging setup with secret sanitization
- Configuration dry runs and health checks
- Triage of a single test message, printed as JSON
"""

import argparse
import asyncio
import json
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from notification_triage._version import __version__

if TYPE_CHECKING:
    from notification_triage.config.schema import TriageConfig

log = structlog.get_logger()


def setup_logging(
    debug: bool = False,
    log_format: str = "console",
    file_path: Path | None = None,
    file_enabled: bool = False,
) -> None:
    """Configure structured logging with secret sanitization.

    Args:
        debug: Enable debug logging if True
        log_format: Output format ("json" or "console")
        file_path: Path to log file (if file logging enabled)
        file_enabled: Whether to enable file logging
    """
    from notification_triage.utils.logging import LogFormat, LogLevel, configure_logging

    level = LogLevel.DEBUG if debug else LogLevel.INFO

    configure_logging(
        level=level,
        log_format=LogFormat(log_format.lower()),
        file_path=file_path,
        file_enabled=file_enabled,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="notification-triage",
        description="Notification triage engine - decide who gets alerted about chat messages",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config/config.yaml"),
        help="Path to configuration file (default: config/config.yaml)",
    )

    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--format",
        choices=["json", "console"],
        default="console",
        help="Log output format (default: console)",
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and validate the configuration, then exit",
    )
    mode.add_argument(
        "--health-check",
        action="store_true",
        help="Run health check and exit",
    )
    mode.add_argument(
        "--test-message",
        metavar="TEXT",
        help="Triage one message and print the notification record as JSON",
    )

    parser.add_argument("--user", default="U0TEST", help="Recipient user id for --test-message")
    parser.add_argument("--team", default="T0TEST", help="Team id for --test-message")
    parser.add_argument("--channel", default="general", help="Channel for --test-message")

    return parser.parse_args(argv)


class PrintingAlertSender:
    """Direct alert sender that prints the rendered payload instead of sending it."""

    async def send_direct_alert(self, user_id: str, payload: dict[str, Any]) -> str:
        print(json.dumps({"direct_alert": {"user_id": user_id, **payload}}, indent=2))
        return f"printed-{user_id}"


async def run_test_message(
    config: "TriageConfig",
    text: str,
    user_id: str,
    team_id: str,
    channel: str,
) -> int:
    """Run one message through the full pipeline and print the record."""
    from notification_triage.core.engine import create_engine
    from notification_triage.models.message import ChannelInfo, IncomingMessage, UserProfile

    engine = create_engine(config, alert_sender=PrintingAlertSender())
    now = datetime.now(UTC)
    message = IncomingMessage(
        message_id=f"{now.timestamp():.6f}",
        text=text,
        user_id="U0SENDER",
        channel_id=channel,
        timestamp=now,
    )
    profile = UserProfile(user_id=user_id, team_id=team_id)
    channel_info = ChannelInfo(channel_id=channel, name=channel.lstrip("#"))

    await engine.start()
    try:
        record = await engine.process(message, profile, channel_info)
    finally:
        await engine.stop()

    if record is None:
        log.error("test_message_failed")
        return 1

    print(json.dumps(record.to_dict(), indent=2))
    return 0


async def run(args: argparse.Namespace) -> int:
    """Run the selected command.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    config_path: Path = args.config
    log.info(
        "starting_notification_triage",
        version=__version__,
        config_path=str(config_path),
    )

    try:
        from notification_triage.config.loader import load_config

        log.info("loading_configuration", path=str(config_path))
        config = load_config(config_path)
        log.info("configuration_loaded", classifier=config.classifier.provider)

        # Reconfigure logging from config file settings
        from notification_triage.utils.logging import configure_logging

        configure_logging(
            level="DEBUG" if args.debug else config.logging.level,
            log_format=config.logging.format,
            file_path=config.logging.file.path if config.logging.file.enabled else None,
            file_enabled=config.logging.file.enabled,
        )

        if args.dry_run:
            from notification_triage.utils.security import mask_settings

            log.info(
                "dry_run_mode_config_valid",
                config=mask_settings(config.model_dump(mode="json")),
            )
            return 0

        if args.health_check:
            from notification_triage.core.engine import create_classification_client
            from notification_triage.utils.health import HealthChecker

            client = create_classification_client(config)
            try:
                report = await HealthChecker(config, client).run_all_checks()
            finally:
                await client.aclose()

            print(json.dumps(report.to_dict(), indent=2))
            if report.healthy:
                log.info("health_check_passed", status=report.status.value)
                return 0
            log.error("health_check_failed", details=report.details)
            return 1

        return await run_test_message(
            config, args.test_message, args.user, args.team, args.channel
        )

    except FileNotFoundError as e:
        log.error("configuration_file_not_found", path=str(config_path), error=str(e))
        return 1
    except ValueError as e:
        log.error("configuration_invalid", error=str(e))
        return 1
    except Exception as e:
        log.exception("fatal_error", error=str(e))
        return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    setup_logging(
        debug=args.debug,
        log_format=args.format,
    )

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        log.info("shutting_down_gracefully")
        return 0


if __name__ == "__main__":
    sys.exit(main())

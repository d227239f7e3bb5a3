# backend/main.py

# Suppress ResourceWarning from wsdiscovery library (unclosed sockets in daemon threads)
# Must be done before any other imports
import warnings

warnings.filterwarnings("ignore", category=ResourceWarning)
warnings.filterwarnings("ignore", message="unclosed.*socket")
warnings.filterwarnings("ignore", module="wsdiscovery")

import argparse
import asyncio
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from pydantic import ValidationError

from config import Settings, get_settings
from errors import ConfigurationError, DiscoveryError
from integrations.onvif_client import ONVIFServiceClient
from integrations.ws_discovery import WSDiscoveryScanner
from models.inventory import SweepSummary
from services.credentials import CredentialCatalog, load_credential_table, parse_credential_pairs
from services.fanout import DiscoveryFanOut
from services.session import SessionFactory
from services.streams import StreamEnumerator
from services.trial import CredentialTrial

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_DISCOVERY_ERROR = 2
EXIT_INTERRUPTED = 130

VERBOSITY_LEVELS = ["WARNING", "INFO", "DEBUG"]

# Third-party loggers that are too chatty below WARNING
QUIET_LOGGERS = ["zeep", "urllib3", "wsdiscovery", "asyncio"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="camsweep",
        description=(
            "Discover ONVIF cameras, find working credentials and print their "
            "RTSP stream URIs (name<TAB>uri<TAB>WxH<TAB>fps)."
        ),
    )
    parser.add_argument("-c", "--config", dest="credentials_file",
                        help="YAML credentials file (default: conf.yaml)")
    parser.add_argument("-t", "--duration", dest="discovery_seconds", type=float,
                        help="Discovery listen window in seconds (default: 1)")
    parser.add_argument("-j", "--max-concurrent", dest="max_concurrent_devices", type=int,
                        help="Devices processed at once (default: 100)")
    parser.add_argument("--fallback", action="append", metavar="USER:PASSWORD",
                        help="Credentials for devices missing from the config file (repeatable)")
    parser.add_argument("--anonymous", dest="try_anonymous", action="store_true", default=None,
                        help="Also try every device without credentials")
    parser.add_argument("--attempt-timeout", dest="attempt_timeout_seconds", type=float,
                        help="Seconds allowed for one credential attempt")
    parser.add_argument("--device-timeout", dest="device_timeout_seconds", type=float,
                        help="Seconds allowed for one device")
    parser.add_argument("--scope", action="append", metavar="URI",
                        help="Only probe devices with this scope (repeatable)")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More diagnostics on stderr (-v, -vv, -vvv)")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Command line flags win over CAMSWEEP_* environment settings"""
    updates = {}
    for name in (
        "credentials_file",
        "discovery_seconds",
        "max_concurrent_devices",
        "try_anonymous",
        "attempt_timeout_seconds",
        "device_timeout_seconds",
    ):
        value = getattr(args, name, None)
        if value is not None:
            updates[name] = value

    if args.fallback:
        updates["fallback_credentials"] = ",".join(args.fallback)
    if args.scope:
        updates["scopes"] = ",".join(args.scope)
    if args.verbose:
        updates["log_level"] = VERBOSITY_LEVELS[min(args.verbose, len(VERBOSITY_LEVELS)) - 1]

    if updates.get("max_concurrent_devices", settings.max_concurrent_devices) < 1:
        raise ConfigurationError("max_concurrent_devices must be at least 1", setting="max_concurrent_devices")

    return settings.model_copy(update=updates)


def configure_logging(level_name: str) -> None:
    """Diagnostics go to stderr; stdout carries only stream lines"""
    level = getattr(logging, level_name.upper(), logging.ERROR)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


async def sweep(settings: Settings) -> SweepSummary:
    """Load credentials, run discovery and process every device found"""
    table = load_credential_table(settings.credentials_file)
    catalog = CredentialCatalog(
        table,
        fallback=parse_credential_pairs(settings.fallback_credentials),
        try_anonymous=settings.try_anonymous,
    )
    if not catalog.fallback and not catalog.try_anonymous:
        logger.info("No fallback credentials configured; unmatched devices will be reported only")

    executor = ThreadPoolExecutor(max_workers=settings.worker_count, thread_name_prefix="camsweep")
    try:
        transport = ONVIFServiceClient(
            timeout=settings.onvif_timeout_seconds,
            wsdl_dir=settings.wsdl_dir or None,
            use_cache=settings.use_wsdl_cache,
            executor=executor,
        )
    except BaseException:
        executor.shutdown(wait=False)
        raise

    try:
        trial = CredentialTrial(
            SessionFactory(transport),
            StreamEnumerator(transport),
            attempt_timeout=settings.attempt_timeout_seconds,
        )
        fanout = DiscoveryFanOut(
            catalog,
            trial,
            max_concurrent=settings.max_concurrent_devices,
            device_timeout=settings.device_timeout_seconds,
        )
        scanner = WSDiscoveryScanner(executor=executor, scopes=settings.scope_list)

        return await fanout.run(
            scanner.discover(settings.discovery_seconds, settings.discovery_poll_seconds)
        )
    finally:
        # Also shuts down the executor the scanner shares
        transport.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = apply_overrides(get_settings(), args)
    except (ValidationError, ConfigurationError) as e:
        configure_logging("ERROR")
        logger.critical(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    configure_logging(settings.log_level)

    try:
        summary = asyncio.run(sweep(settings))
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e.message}")
        if e.details:
            logger.critical(f"Details: {e.details}")
        return EXIT_CONFIG_ERROR
    except DiscoveryError as e:
        logger.critical(f"Discovery failed: {e.message} ({e.recovery_hint})")
        return EXIT_DISCOVERY_ERROR
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_INTERRUPTED

    logger.info(f"Summary: {summary.to_dict()}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

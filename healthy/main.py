"""Entry point for the healthy daemon — `healthy` console script."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from .config import Settings, settings
from .errors import ConfigError
from .health import Checker, FailureOptions, HttpCheck, with_retries
from .health.checker import Notifier
from .notifications import build_notifier
from .registry import DaemonConfig, load_config, load_config_file

console = Console(stderr=True)
logger = logging.getLogger("healthy")


def build_checker(
    config: DaemonConfig,
    cfg: Settings,
    notifier: Notifier | None = None,
) -> Checker:
    """Wire every configured check into a Checker."""
    options = FailureOptions(
        report_failures_count=config.report_failures_count or cfg.report_failures_count,
        first_retry_delay=(
            config.first_retry_delay
            if config.first_retry_delay is not None
            else cfg.first_retry_delay
        ),
    )
    checker = Checker(
        notifier=notifier if notifier is not None else build_notifier(config, cfg),
        logger=logger,
        default_failure_options=options,
    )
    for hc in config.http_checks:
        check = HttpCheck(
            url=hc.url,
            expected_status_code=hc.expected_status_code,
            timeout=hc.timeout,
        )
        task = with_retries(check, hc.retries) if hc.retries > 1 else check
        logger.info("Setting up %s, period %ss", task.name, hc.period)
        checker.add_task(task, hc.period, hc.flex)
    return checker


async def serve(checker: Checker, stop_event: asyncio.Event | None = None) -> None:
    """Run ``checker`` until ``stop_event`` is set (SIGINT/SIGTERM by default)."""
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not available on this platform / outside the main thread.
            pass

    logger.info("Starting all checks...")
    await checker.run()
    try:
        await stop_event.wait()
        logger.info("Got stop signal, shutting down...")
    finally:
        await checker.stop()
        for sig in installed:
            loop.remove_signal_handler(sig)
    logger.info("Done")


def _read_config(path: str) -> DaemonConfig:
    if path:
        return load_config_file(path)
    if sys.stdin.isatty():
        raise ConfigError("Expected config file in stdin")
    text = sys.stdin.read()
    if not text.strip():
        raise ConfigError("Expected config file in stdin")
    return load_config(text)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="healthy — periodic health checks")
    parser.add_argument(
        "--config-file",
        default=settings.config_file,
        help="Checks file (YAML or JSON); read from stdin when omitted",
    )
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    try:
        config = _read_config(args.config_file)
        checker = build_checker(config, settings)
    except (ConfigError, ValueError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        return 1

    console.print(
        Panel.fit(
            "\n".join(
                [f"[bold]{len(config.http_checks)} HTTP checks[/bold]"]
                + [f"{escape(hc.url)}  every {hc.period}s ± {hc.flex}s" for hc in config.http_checks]
            ),
            title="healthy",
            border_style="green",
        )
    )

    asyncio.run(serve(checker))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

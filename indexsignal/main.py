"""IndexSignal — application entry point.

Boots the FastAPI status server and provides the CLI entry point that
runs the signal scheduler (continuously, or a single pass with --once).
"""

import logging

from fastapi import FastAPI

from indexsignal.api.routers import router

app = FastAPI(title="IndexSignal Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("indexsignal")


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


def build_feed(config):
    """HTTP feed for an ``http(s)://`` URL, otherwise a CSV directory feed."""
    from indexsignal.feeds.csv_feed import CsvCandleFeed
    from indexsignal.feeds.http_feed import HttpCandleFeed

    if config.feed_is_http:
        return HttpCandleFeed(config.candle_feed_url, token=config.candle_feed_token)
    return CsvCandleFeed(config.candle_feed_url)


def build_scheduler(settings, feed):
    """Wire source → engine → scheduler (plus the selector when enabled)."""
    from indexsignal.api.routers import configure_routers
    from indexsignal.engine import SignalEngine
    from indexsignal.risk.circuit_breaker import CircuitBreaker
    from indexsignal.scheduler import Scheduler
    from indexsignal.state.state_tracker import StateTracker
    from indexsignal.state.store import InMemoryTTLStore
    from indexsignal.strategy.index_selector import IndexSelector
    from indexsignal.strategy.indicator_source import FeedIndicatorSource
    from indexsignal.strategy.trend_scorer import TrendScorer

    source = FeedIndicatorSource(feed)
    state_tracker = StateTracker(InMemoryTTLStore())
    engine = SignalEngine(settings, source, state_tracker)

    selector = None
    if settings.selector.enabled:
        selector_cfg = settings.selector
        selector = IndexSelector(
            lambda _key: TrendScorer(
                source,
                primary_tf=selector_cfg.primary_tf,
                confirmation_tf=selector_cfg.confirmation_tf,
                supertrend=settings.signals.supertrend,
            ),
            selector_cfg,
        )

    scheduler = Scheduler(
        engine,
        settings,
        state_tracker,
        breaker=CircuitBreaker(),
        selector=selector,
    )
    configure_routers(state_tracker=state_tracker)
    return scheduler


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse
    import asyncio

    from indexsignal.config import load_config, load_settings

    parser = argparse.ArgumentParser(description="IndexSignal intraday signal engine")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single pass over the indices and exit",
    )
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run the scheduler without the API server",
    )
    parser.add_argument(
        "--settings",
        help="Path to the JSON settings file (default: SETTINGS_PATH or indexsignal.json)",
    )
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    settings = load_settings(args.settings or config.settings_path)
    scheduler = build_scheduler(settings, build_feed(config))

    import signal

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received — stopping gracefully.")
        scheduler.stop()

    signal.signal(signal.SIGINT, handle_shutdown)

    if args.once:
        asyncio.run(_run_once(scheduler))
    elif args.engine_only:
        asyncio.run(_run_scheduler_only(scheduler))
    else:
        asyncio.run(_run_with_server(scheduler, port=config.health_port))


async def _run_once(scheduler) -> None:
    """Evaluate every index once and log the decisions."""
    decisions = await scheduler.run_pass()
    for decision in decisions:
        logger.info(
            "%s: %s %s (%s)",
            decision.index, decision.status, decision.direction or "-", decision.reason,
        )


async def _run_with_server(scheduler, port: int = 8080) -> None:
    """Start the API server and the scheduler concurrently."""
    import asyncio
    import uvicorn

    logger.info(
        "Starting IndexSignal with %d index(es).", len(scheduler.indices)
    )

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)

    async def _run_server():
        await server.serve()

    async def _run_scheduler():
        await scheduler.run()

    logger.info("Status API available at http://localhost:%d", port)
    results = await asyncio.gather(
        _run_server(),
        _run_scheduler(),
        return_exceptions=True,
    )
    logger.info("IndexSignal stopped. Results: %s", results)


async def _run_scheduler_only(scheduler) -> None:
    """Run the scheduler without starting the API server."""
    logger.info(
        "Starting IndexSignal scheduler (no API) with %d index(es).",
        len(scheduler.indices),
    )
    await scheduler.run()
    logger.info("IndexSignal scheduler stopped.")


if __name__ == "__main__":
    _run_cli()

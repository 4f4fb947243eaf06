"""
Reactgate Daemon - Main Entry Point

Runs the approval HTTP API (default port 3000). A deploy (or any privileged
action) is granted only after someone reacts to the prompt posted in the
approval channel.

Endpoints:
- GET  /health                            - Health check
- GET  /api/v1/pending                    - Engine statistics and pending requests
- POST /ticket                            - Ask for approval and wait for it
- POST /events-endpoint                   - Slack Events API deliveries
- POST /.well-known/macfly/3p             - Start a third-party discharge round
- GET  /.well-known/macfly/3p/poll/{id}   - Poll a discharge round
"""

import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI

from . import __version__
from .api.discharge import router as discharge_router
from .api.events import router as events_router
from .api.tickets import router as tickets_router
from .config.settings import BotConfig, ConfigError
from .core.reactions import ReactionClassifier
from .core.tickets import TicketCodec
from .service.correlation import CorrelationEngine
from .service.discharge import DischargeAuthority, InMemoryDischargeAuthority
from .service.notifier import Notifier, SlackNotifier
from .service.requests import ApprovalRequester

logger = logging.getLogger("reactgate.daemon")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def create_app(
    config: BotConfig,
    notifier: Optional[Notifier] = None,
    authority: Optional[DischargeAuthority] = None,
    engine: Optional[CorrelationEngine] = None,
) -> FastAPI:
    """
    Build the daemon's FastAPI app.

    Args:
        config: Loaded configuration
        notifier: Messaging platform (defaults to Slack)
        authority: Discharge Authority (defaults to the in-memory poll store)
        engine: Correlation engine (defaults to one built from config)
    """
    codec = TicketCodec(config.macaroon_secret, config.location)
    if notifier is None:
        notifier = SlackNotifier(config.bot_token, config.signing_secret)
    if authority is None:
        authority = InMemoryDischargeAuthority(codec, capacity=config.poll_capacity)
    if engine is None:
        engine = CorrelationEngine(
            authority,
            deadline=config.deadline_seconds,
            sweep_interval=config.sweep_interval_seconds,
        )
    if not config.channel:
        logger.warning("No approval channel configured; prompts will fail to post")

    app = FastAPI(
        title="Reactgate",
        description="Human approval gate driven by channel reactions",
        version=__version__,
    )

    app.state.config = config
    app.state.codec = codec
    app.state.notifier = notifier
    app.state.authority = authority
    app.state.engine = engine
    app.state.classifier = ReactionClassifier(config.approve_reactions)
    app.state.requester = ApprovalRequester(engine, notifier, authority, config.channel)

    app.include_router(tickets_router, tags=["approval"])
    app.include_router(events_router, tags=["events"])
    app.include_router(discharge_router, tags=["discharge"])

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok" if engine.is_running else "starting",
            "version": __version__,
        }

    @app.get("/api/v1/pending")
    async def get_pending():
        """Engine statistics plus a snapshot of pending requests."""
        snapshot = {"count": 0, "requests": []}
        if engine.is_running:
            snapshot = await engine.snapshot()
        return {
            "engine": engine.get_statistics(),
            "pending": snapshot,
            "config": config.to_dict(),
        }

    @app.on_event("startup")
    async def on_startup():
        logger.info("Reactgate starting up...")
        await engine.start()

    @app.on_event("shutdown")
    async def on_shutdown():
        logger.info("Reactgate shutting down...")
        await engine.stop()

    return app


def main() -> int:
    """Run the daemon."""
    try:
        config = BotConfig.load()
    except ConfigError as e:
        configure_logging()
        logger.error(str(e))
        return 1

    configure_logging(config.log_level)
    app = create_app(config)

    logger.info(f"Starting Reactgate v{__version__}")
    logger.info(f"   Listening on http://{config.host}:{config.port}")
    logger.info(f"   Approval channel: {config.channel or '(unset)'}")

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        access_log=False,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
ClawGuard Daemon - Main Entry Point

Runs the ClawGuard HTTP API (default port 3344).

Endpoints:
- GET  /api/health                - Health check
- POST /api/approve               - Create approval request (automation client)
- GET  /api/approve               - List pending approval requests
- POST /api/channel/message       - Apply an /allow or /deny chat reply
- GET  /api/approve/{id}          - Poll approval status
- POST /api/approve/{id}/decide   - Submit allow/deny (human channel)
- GET  /api/tools                 - Tools visible for a channel/sender

Background:
- Expiry sweep turning stale pending approvals into "expired"
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, Sequence

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.approvals import router as approvals_router
from .api.tools import router as tools_router
from .config.settings import GuardConfig
from .service.approvals import ApprovalStore
from .service.notifier import build_notifier
from .service.plugin_host import Plugin, PluginHost
from .service.policy import ToolPolicy, load_policies
from .service.state_store import StateStore

logger = logging.getLogger("clawguard.daemon")


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


async def _expiry_sweep(store: ApprovalStore, max_age_ms: int, interval: float):
    """Periodically expire pending approvals older than max_age_ms."""
    loop = asyncio.get_running_loop()
    while True:
        try:
            await loop.run_in_executor(None, store.expire_older_than, max_age_ms)
        except Exception:
            logger.exception("Expiry sweep failed, retrying next interval")
        await asyncio.sleep(interval)


def create_app(
    config: Optional[GuardConfig] = None,
    state: Optional[StateStore] = None,
    policies: Optional[Sequence[ToolPolicy]] = None,
    plugins: Sequence[Plugin] = (),
) -> FastAPI:
    """
    Build the ClawGuard application.

    Args:
        config: Runtime configuration (defaults to the environment)
        state: Durable store (defaults to <state_dir>/clawguard.db)
        policies: Tool policy rules (defaults to the configured policy file)
        plugins: Tool plugins initialized on startup
    """
    config = config or GuardConfig.from_env()
    state = state or StateStore(config.db_path)
    approvals = ApprovalStore(state)
    plugin_host = PluginHost(
        state=state,
        approvals=approvals,
        approval_timeout=config.approval_timeout_seconds,
        poll_interval=config.poll_interval_seconds,
    )

    notifier = build_notifier(config.notify_url)
    if notifier:
        approvals.register_callback(notifier.on_approval_event)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        rules = policies if policies is not None else await load_policies(
            config.policy_file
        )
        plugin_host.set_policies(rules)

        for plugin in plugins:
            await plugin_host.register(plugin, {})
        await plugin_host.init_all()

        sweep = asyncio.create_task(
            _expiry_sweep(
                approvals,
                int(config.approval_max_age_seconds * 1000),
                config.sweep_interval_seconds,
            )
        )
        logger.info(
            f"ClawGuard started: {len(rules)} policy rules, "
            f"{len(plugin_host.get_tools())} tools, state={state.db_path}"
        )
        try:
            yield
        finally:
            sweep.cancel()
            try:
                await sweep
            except asyncio.CancelledError:
                pass
            await plugin_host.shutdown_all()
            logger.info("ClawGuard stopped")

    app = FastAPI(
        title="ClawGuard",
        description="Tool authorization and approval gate for automation agents",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS for the local web dashboard
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.state_store = state
    app.state.approvals = approvals
    app.state.plugin_host = plugin_host

    app.include_router(approvals_router, tags=["approvals"])
    app.include_router(tools_router, tags=["tools"])

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "clawguard",
            "version": __version__,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }

    return app


def run(config: Optional[GuardConfig] = None):
    """Run the daemon with uvicorn."""
    config = config or GuardConfig.from_env()
    setup_logging(config.log_level)
    app = create_app(config)
    uvicorn.run(app, host=config.host, port=config.port, log_level="info")


if __name__ == "__main__":
    run()

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from rcv_node import __version__
from rcv_node.api.governance import router as governance_router
from rcv_node.executor import LedgerExecutor

log = logging.getLogger(__name__)


def create_app(executor: Optional[LedgerExecutor] = None) -> FastAPI:
    """
    Build the node API around one LedgerExecutor. Tests pass their own;
    otherwise one is created from rcv_config.yaml in the working directory.
    """
    app = FastAPI(title="rcv node API", version=__version__)
    app.state.executor = executor or LedgerExecutor()

    app.include_router(governance_router)
    log.info("rcv node API ready (chain_id=%s)", app.state.executor.domain.chain_id)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app

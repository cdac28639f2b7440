"""Stand-in renewals backend: FastAPI application factory.

Serves the renewal routes from an in-memory store so the client and CLI can
run end to end without the production service.  The factory creates a
FastAPI instance with:
- CORS middleware (configurable origins)
- Optional bearer-token authentication
- Health endpoint at GET /api/health
- Renewal routes under /api/renewals
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from renewals import __version__
from renewals.api.middleware import register_error_handlers
from renewals.api.router import BackendState
from renewals.api.router import router as renewals_router
from renewals.store import RenewalStore, sample_renewals

logger = logging.getLogger(__name__)


def create_app(
    store: RenewalStore | None = None,
    *,
    tokens: dict[str, str] | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    store:
        Backing store.  Defaults to a store seeded with
        :func:`~renewals.store.sample_renewals`.
    tokens:
        Map of bearer token to user id.  When set, every renewal route
        requires a known token and ``/renewals/user`` returns only that
        user's records.  When None, authentication is off.
    cors_origins:
        Allowed CORS origins. Defaults to ["http://localhost:5173"].
    """
    if store is None:
        store = RenewalStore(sample_renewals())
    if cors_origins is None:
        cors_origins = ["http://localhost:5173"]

    app = FastAPI(title="Renewals API", version=__version__)
    app.router.redirect_slashes = False
    app.state.backend = BackendState(store=store, tokens=tokens)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(renewals_router, prefix="/api")

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    logger.info(
        "Renewals API ready with %d record(s), auth %s",
        len(store),
        "on" if tokens is not None else "off",
    )
    return app

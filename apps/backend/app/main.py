import logging
import os
import sys
from fastapi import FastAPI, HTTPException
from app.routes.runs import runs_router
from app.services import runs as run_service
from app.services.errors import ServiceError

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

# Configure logging to output to stdout
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Set specific loggers
logging.getLogger("app").setLevel(logging.DEBUG)
logging.getLogger("httpx").setLevel(logging.WARNING)

SENTRY_DSN = os.getenv("SENTRY_DSN") or ""
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=os.getenv("SENTRY_ENVIRONMENT", "production"),
        release=os.getenv("SENTRY_RELEASE") or None,
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.05")),
        profiles_sample_rate=float(os.getenv("SENTRY_PROFILES_SAMPLE_RATE", "0.0")),
        integrations=[FastApiIntegration()],
        send_default_pii=False,
    )

app = FastAPI()
logger = logging.getLogger("app.main")

@app.get("/")
def health():
    return {"status": "ok"}


@app.get("/health/orchestrator")
def orchestrator_health():
    try:
        orchestrator = run_service.get_orchestrator()
    except ServiceError as exc:
        logger.exception("Orchestrator health failed")
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return {
        "status": "ok",
        "workers": orchestrator.registry.names(),
        "caches": [
            orchestrator.caches.intent.stats(),
            orchestrator.caches.route.stats(),
            orchestrator.caches.weather.stats(),
        ],
    }

app.include_router(runs_router)

import logging
import os
import sys

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration

from giftflow.routes.assets import assets_router
from giftflow.routes.editor import editor_router
from giftflow.routes.flows import flows_router
from giftflow.routes.nodes import nodes_router
from giftflow.routes.play import play_router, sessions_router
from giftflow.routes.projects import projects_router
from giftflow.services.errors import ServiceError, error_payload

# Configure logging to output to stdout
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

logging.getLogger("giftflow").setLevel(os.getenv("GIFTFLOW_LOG_LEVEL", "INFO").upper())
logging.getLogger("httpx").setLevel(logging.WARNING)

SENTRY_DSN = os.getenv("SENTRY_DSN") or ""
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=os.getenv("SENTRY_ENVIRONMENT", "production"),
        release=os.getenv("SENTRY_RELEASE") or None,
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.05")),
        integrations=[FastApiIntegration()],
        send_default_pii=False,
    )

app = FastAPI(title="giftflow")
logger = logging.getLogger("giftflow.main")


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc))


@app.get("/")
def health():
    return {"status": "ok"}


app.include_router(flows_router)
app.include_router(projects_router)
app.include_router(nodes_router)
app.include_router(editor_router)
app.include_router(play_router)
app.include_router(sessions_router)
app.include_router(assets_router)

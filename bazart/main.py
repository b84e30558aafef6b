from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from bazart.version import VERSION
from bazart.api import cart, orders, payments, suborders
from bazart.core.logging import clear_request_context, configure_logging, get_logger
from bazart.errors import MarketplaceError
from bazart.kafka import consumer as event_consumer
from bazart.services import reconciliation

log = get_logger(__name__)

instrumentator = Instrumentator()

app = FastAPI(title="Bazart Marketplace", version=VERSION)

instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/metrics",
    should_gzip=True,
)

@app.middleware("http")
async def request_context(request: Request, call_next):
    clear_request_context()
    return await call_next(request)

@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        log.error("request.failed", path=request.url.path, error=exc.kind, message=exc.message)
    else:
        log.info("request.rejected", path=request.url.path, error=exc.kind, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

# Health endpoints
@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/v1/_info")
def info():
    return {"service": "bazart", "version": VERSION}

@app.on_event("startup")
async def startup_event():
    configure_logging()
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            log.debug("route", methods=sorted(route.methods), path=route.path)
    event_consumer.start()
    reconciliation.start()

@app.on_event("shutdown")
async def shutdown_event():
    event_consumer.stop()
    reconciliation.stop()

app.include_router(cart.router, prefix="/cart", tags=["cart"])
app.include_router(orders.router, prefix="/order", tags=["orders"])
app.include_router(suborders.router, prefix="/suborders", tags=["suborders"])
app.include_router(payments.router, prefix="/payment", tags=["payments"])

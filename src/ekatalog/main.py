from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from ekatalog.api.routes.members import router as members_router
from ekatalog.api.routes.collections import router as collections_router
from ekatalog.logging_config import configure_logging
from ekatalog.tracing import configure_tracing

# ------------------------------------------------------------------
# Configure Observability
# ------------------------------------------------------------------
configure_logging()
configure_tracing()

app = FastAPI(title="ekatalog")

# ------------------------------------------------------------------
# Observability
# ------------------------------------------------------------------
FastAPIInstrumentor.instrument_app(app)
Instrumentator().instrument(app).expose(app)


# ------------------------------------------------------------------
# Health Check
# ------------------------------------------------------------------
@app.get("/health")
def health_check():
    return {"status": "ok"}


# /members must be registered before the catch-all /{collection} routes
app.include_router(members_router)
app.include_router(collections_router)

from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from qrcoded.api.routes.qr_codes import router as qr_codes_router
from qrcoded.db.database import AUTO_CREATE_TABLES, init_db
from qrcoded.services.generation_queue import GenerationQueue
from qrcoded.logging_config import configure_logging
from prometheus_fastapi_instrumentator import Instrumentator
from qrcoded.tracing import configure_tracing
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

# ------------------------------------------------------------------
# Configure Observability
# ------------------------------------------------------------------
configure_logging()
configure_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if AUTO_CREATE_TABLES:
        init_db()
    app.state.generation_queue.start()
    try:
        yield
    finally:
        app.state.generation_queue.stop()


app = FastAPI(title="qrcoded", lifespan=lifespan)

# Created here, started by the lifespan; tests swap it for their own queue.
app.state.generation_queue = GenerationQueue()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(qr_codes_router)

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

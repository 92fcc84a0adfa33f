from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging
import os

from .config import settings
from .database import engine, Base
from .backup import InvalidBackup
from .calculators.base import CalculatorError
from .document_service import CustomerNotFound, DocumentError, DocumentNotFound
from .email_composer import UnknownTemplate
from .pricing_settings import InvalidPricingConfig
from .routers import backup, customers, documents, pricing

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("invoicer")

# Create tables (handles new tables but won't add columns to existing ones)
Base.metadata.create_all(bind=engine)

BASE_REVISION = "5c1d8e2a9b34"


def _run_migrations():
    """Run pending Alembic migrations on startup.

    Databases created by Base.metadata.create_all() have no alembic_version
    table; those get the base migration stamped first.
    """
    try:
        from alembic.config import Config
        from alembic import command
        from sqlalchemy import inspect

        alembic_ini = os.path.join(os.path.dirname(__file__), "..", "alembic.ini")
        if not os.path.exists(alembic_ini):
            logger.info("alembic.ini not found, skipping migrations")
            return

        alembic_cfg = Config(alembic_ini)
        alembic_cfg.set_main_option("script_location", os.path.join(os.path.dirname(alembic_ini), "alembic"))
        alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

        insp = inspect(engine)
        tables = insp.get_table_names()
        if "alembic_version" not in tables and "documents" in tables:
            logger.info("Stamping base migration %s (tables already exist)", BASE_REVISION)
            command.stamp(alembic_cfg, BASE_REVISION)

        logger.info("Running pending Alembic migrations...")
        command.upgrade(alembic_cfg, "head")
        logger.info("Migrations complete")

    except Exception as e:
        # Never let migration errors prevent app startup
        logger.warning(f"Alembic migration warning: {e}")


app = FastAPI(
    title="Slab Invoicing",
    description="Invoices, estimates and concrete leveling pricing for a concrete & masonry contractor",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Domain errors -> HTTP ---

@app.exception_handler(CalculatorError)
def calculator_error(request: Request, exc: CalculatorError):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "error": exc.code, "field": exc.field},
    )


@app.exception_handler(DocumentNotFound)
@app.exception_handler(CustomerNotFound)
def not_found(request: Request, exc: LookupError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(DocumentError)
def document_error(request: Request, exc: DocumentError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(InvalidPricingConfig)
@app.exception_handler(UnknownTemplate)
@app.exception_handler(InvalidBackup)
def bad_request(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# API routes
app.include_router(customers.router, prefix="/api")
app.include_router(documents.invoices_router, prefix="/api")
app.include_router(documents.estimates_router, prefix="/api")
app.include_router(pricing.router, prefix="/api")
app.include_router(backup.router, prefix="/api")


@app.get("/health")
def health():
    return {"status": "ok", "app": "slab-invoicing"}


@app.on_event("startup")
def auto_migrate():
    """Run pending Alembic migrations on startup."""
    _run_migrations()

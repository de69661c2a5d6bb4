"""
Main FastAPI application per composition-processor.

Endpoint:
- POST /suggest/food: albero prodotto alimentare
- POST /decompose/non-food: distinta base prodotto non alimentare
- POST /extract: estrazione strutturata da testo e allegati
- GET /api/diagnostics/counters: contatori provider/cataloghi
- GET /health
"""
import logging
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_config, validate_config
from core.diagnostics_state import get_prefixed
from core.logger import setup_colored_logging
from core.process_types import registry_from_config
from api.routers import diagnostics, extract, suggest

# Configurazione logging colorato
setup_colored_logging("composer")
logger = logging.getLogger(__name__)

app = FastAPI(title="Composition Processor", version="1.0.0")

# CORS per i client browser (header provider esposto esplicitamente)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*", "Authorization", "Content-Type", "x-ai-provider"],
)

app.include_router(suggest.router)  # /suggest/food, /decompose/non-food
app.include_router(extract.router)  # /extract
app.include_router(diagnostics.router)  # /api/diagnostics/*


@app.on_event("startup")
async def startup_event():
    """Valida configurazione e costruisce il registro dei tipi di processo."""
    config = get_config()
    validate_config()

    app.state.process_types = registry_from_config(config)
    logger.info(
        f"Registro tipi di processo v{app.state.process_types.version}: "
        f"{list(app.state.process_types.types)} (default: {app.state.process_types.default})"
    )

    configured = sorted(config.provider_keys().keys())
    if configured:
        logger.info(f"Provider LLM configurati: {configured}")
    else:
        logger.warning("Nessun provider LLM configurato - solo chiavi per richiesta o template euristico")


@app.get("/health")
async def health_check():
    """Health check del servizio con provider e registro tipi di processo."""
    try:
        config = get_config()
        registry = getattr(app.state, "process_types", None) or registry_from_config(config)

        return {
            "status": "healthy",
            "service": "composition-processor",
            "version": config.processor_version,
            "timestamp": str(datetime.utcnow()),
            "providers": {
                name: ("configured" if name in config.provider_keys() else "not_configured")
                for name in config.get_provider_order_list()
            },
            "process_types": {
                "version": registry.version,
                "types": list(registry.types),
                "default": registry.default,
            },
            "counters": {
                "provider": get_prefixed("provider."),
                "catalog": get_prefixed("catalog."),
            },
            "endpoints": {
                "suggest_food": "/suggest/food",
                "decompose_non_food": "/decompose/non-food",
                "extract": "/extract",
                "counters": "/api/diagnostics/counters",
            },
        }

    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {
            "status": "unhealthy",
            "service": "composition-processor",
            "error": str(e),
            "timestamp": str(datetime.utcnow()),
        }

import uvicorn
import os
import logging
from dotenv import load_dotenv

# Carica variabili ambiente
load_dotenv()

# Configurazione logging colorato PRIMA di qualsiasi altro import che usa logging
from core.logger import setup_colored_logging
setup_colored_logging("composer")

from core.config import get_config

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    config = get_config()
    port = int(os.getenv("PORT", config.port))
    host = os.getenv("HOST", config.host)

    # Verifica provider configurati
    configured = sorted(config.provider_keys().keys())
    if not configured:
        logger.warning("Nessuna API key LLM configurata - servono chiavi per richiesta (Authorization)")
    else:
        logger.info(f"Provider configurati: {configured}")

    workers = int(os.getenv("UVICORN_WORKERS", "2"))

    logger.info(f"Starting {config.processor_name} on {host}:{port} with {workers} workers")

    try:
        # Il logging è già configurato da setup_colored_logging sopra
        uvicorn.run(
            "api.main:app",
            host=host,
            port=port,
            workers=workers,
            reload=False,
            log_level="info",
            access_log=True,
            use_colors=False  # colori gestiti da colorlog
        )
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        raise

"""
Logging strutturato per composition-processor.

Unifica logging colorato e structured logging con supporto JSON.
"""
import logging
import json
import uuid
import sys
import contextvars
from typing import Optional, Dict, Any
from datetime import datetime, timezone

import colorlog

# Context variables per tracciare richieste
_request_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar('request_context', default={})


def setup_colored_logging(service_name: str = "composer"):
    """
    Configura logging colorato con colorlog.

    Args:
        service_name: Nome del servizio per identificare log
    """
    # Handler per stdout con colori
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)

    formatter = colorlog.ColoredFormatter(
        f'%(log_color)s[%(levelname)s]%(reset)s %(cyan)s{service_name}%(reset)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        reset=True,
        log_colors={
            'DEBUG': 'white',
            'INFO': 'blue',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        },
        secondary_log_colors={},
        style='%'
    )

    handler.setFormatter(formatter)

    # Configura root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    # Rimuovi handler esistenti
    root_logger.handlers = []
    root_logger.addHandler(handler)

    # Riduci verbosità client HTTP
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('openai').setLevel(logging.WARNING)

    return root_logger


def set_request_context(correlation_id: Optional[str] = None, provider: Optional[str] = None):
    """
    Imposta contesto richiesta per logging strutturato.

    Args:
        correlation_id: ID correlazione (genera se None)
        provider: Provider LLM indicato dal chiamante
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    context: Dict[str, Any] = {"correlation_id": correlation_id}
    if provider:
        context["provider"] = provider

    _request_context.set(context)


def get_request_context() -> Dict[str, Any]:
    """Recupera contesto richiesta corrente."""
    return _request_context.get({})


def get_correlation_id() -> Optional[str]:
    """Recupera correlation ID dal contesto."""
    return get_request_context().get("correlation_id")


def log_json(
    level: str,
    message: str,
    correlation_id: Optional[str] = None,
    stage: Optional[str] = None,
    decision: Optional[str] = None,
    elapsed_ms: Optional[float] = None,
    **extra
):
    """
    Log strutturato in formato JSON line (per produzione).

    Args:
        level: 'info', 'warning', 'error', 'debug'
        message: Messaggio da loggare
        correlation_id: ID correlazione (usa contesto se None)
        stage: Stage pipeline (context, catalog, provider, reconcile, classify)
        decision: Decisione pipeline (model, extracted, template, empty)
        elapsed_ms: Tempo elaborazione in millisecondi
        **extra: Campi aggiuntivi
    """
    ctx = get_request_context()
    if correlation_id is None:
        correlation_id = ctx.get("correlation_id")

    log_data: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level.upper(),
        "message": message,
    }

    if correlation_id:
        log_data["correlation_id"] = correlation_id
    if ctx.get("provider"):
        log_data["provider_hint"] = ctx["provider"]
    if stage:
        log_data["stage"] = stage
    if decision:
        log_data["decision"] = decision
    if elapsed_ms is not None:
        log_data["elapsed_ms"] = round(elapsed_ms, 1)

    log_data.update(extra)

    logger = logging.getLogger(__name__)
    log_func = getattr(logger, level.lower(), logger.info)
    log_func(json.dumps(log_data, ensure_ascii=False, default=str))

"""
Configurazione per composition-processor usando pydantic-settings.

Gestisce variabili d'ambiente, chiavi provider LLM, timeout e cataloghi.
"""
import logging
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Carica .env
load_dotenv()

logger = logging.getLogger(__name__)


class ComposerConfig(BaseSettings):
    """Configurazione completa del servizio di composizione."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server
    port: int = Field(default=8001, description="Porta server FastAPI")
    host: str = Field(default="0.0.0.0", description="Host server FastAPI")

    # Provider LLM
    groq_api_key: str = Field(default="", description="API key Groq")
    groq_model: str = Field(default="llama-3.3-70b-versatile", description="Modello Groq")
    openrouter_api_key: str = Field(default="", description="API key OpenRouter")
    openrouter_model: str = Field(default="openai/gpt-4o-mini", description="Modello OpenRouter")
    gemini_api_key: str = Field(default="", description="API key Gemini")
    gemini_model: str = Field(default="gemini-1.5-flash", description="Modello Gemini")
    default_provider: str = Field(default="groq", description="Provider usato se l'header non ne indica uno")
    provider_order: str = Field(default="groq,openrouter,gemini", description="Ordine di preferenza provider")
    llm_temperature: float = Field(default=0.1, ge=0.0, le=2.0, description="Temperatura chiamate LLM")
    provider_timeout_sec: float = Field(default=60.0, gt=0, description="Timeout per singola chiamata provider")

    # Cataloghi prodotto
    fdc_api_key: str = Field(default="DEMO_KEY", description="API key USDA FoodData Central")
    catalog_timeout_sec: float = Field(default=12.0, gt=0, description="Timeout per singola ricerca catalogo")
    off_page_size: int = Field(default=12, ge=1, le=100, description="Risultati richiesti a OpenFoodFacts")
    off_max_candidates: int = Field(default=10, ge=0, le=100, description="Candidati OpenFoodFacts mantenuti")
    fdc_page_size: int = Field(default=5, ge=1, le=100, description="Risultati richiesti a FDC")
    fdc_max_candidates: int = Field(default=5, ge=0, le=100, description="Candidati FDC mantenuti")

    # Scraping pagine di riferimento
    scrape_timeout_sec: float = Field(default=15.0, gt=0, description="Timeout download pagina")
    scrape_user_agent: str = Field(
        default="Mozilla/5.0 (compatible; CompositionProcessorBot/1.0)",
        description="User-Agent per lo scraping"
    )
    scrape_tail_window: int = Field(default=8000, ge=100, description="Caratteri finali del body se manca la keyword")
    scrape_keyword_window: int = Field(default=3000, ge=100, description="Finestra attorno alla keyword ingredienti")
    scrape_keyword_lead: int = Field(default=100, ge=0, description="Caratteri prima della keyword")

    # Tipi di processo validi
    process_types: str = Field(
        default="printing,milling,freezedrying,blending,harvest,sale,cooking",
        description="Tipi di processo validi (discriminatori)"
    )
    process_types_version: str = Field(default="1", description="Versione enum tipi di processo")
    default_process_type: str = Field(default="blending", description="Tipo di processo di fallback")

    # Processor info
    processor_name: str = Field(default="Composition Processor", description="Nome servizio")
    processor_version: str = Field(default="1.0.0", description="Versione servizio")

    def get_process_types_list(self) -> List[str]:
        """Ritorna lista tipi di processo (senza duplicati, ordine preservato)."""
        seen: List[str] = []
        for item in self.process_types.split(","):
            item = item.strip()
            if item and item not in seen:
                seen.append(item)
        return seen

    def get_provider_order_list(self) -> List[str]:
        """Ritorna ordine provider normalizzato (lowercase)."""
        return [p.strip().lower() for p in self.provider_order.split(",") if p.strip()]

    def provider_keys(self, transient: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """
        Chiavi provider configurate, sovrascritte da quelle transitorie della richiesta.

        Args:
            transient: Chiavi passate per singola richiesta (es. da header Authorization)

        Returns:
            Dict provider -> api key (solo chiavi non vuote)
        """
        keys = {
            "groq": self.groq_api_key,
            "openrouter": self.openrouter_api_key,
            "gemini": self.gemini_api_key,
        }
        for name, value in (transient or {}).items():
            if value:
                keys[name] = value
        return {name: value for name, value in keys.items() if value}

    def validate_config(self) -> bool:
        """Valida configurazione critica."""
        errors = []

        if not self.get_process_types_list():
            errors.append("PROCESS_TYPES vuoto")

        if not self.provider_keys():
            # Warning, non errore (si usa il template euristico)
            logger.warning("Nessuna API key LLM configurata - verrà usato il template euristico")

        if errors:
            error_msg = "❌ Configurazione mancante:\n" + "\n".join(f"  - {error}" for error in errors)
            logger.error(error_msg)
            raise ValueError(error_msg)

        logger.info("✅ Configurazione validata con successo")
        return True


# Istanza globale configurazione
_config: ComposerConfig | None = None


def get_config() -> ComposerConfig:
    """Ottiene istanza configurazione (singleton)."""
    global _config
    if _config is None:
        _config = ComposerConfig()
        _config.validate_config()
    return _config


def validate_config() -> bool:
    """Valida configurazione critica (funzione standalone)."""
    config = get_config()
    return config.validate_config()

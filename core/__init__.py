"""
Core functionality per composition-processor.

Questo modulo contiene:
- Configurazione (config.py)
- Logging (logger.py)
- Contatori diagnostici (diagnostics_state.py)
- Registro tipi di processo (process_types.py)
"""

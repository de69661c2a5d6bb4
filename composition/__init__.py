"""
Pipeline di risoluzione della composizione di un prodotto.

Questo modulo contiene:
- Context builder (scraping pagine di riferimento)
- Aggregatore candidati (OpenFoodFacts + USDA FDC)
- Estrazione ingredienti da testo
- Classificazione tipo di processo
- Riconciliazione quantità (percentuali → grammi, residui, acqua)
- Provider LLM con fallback ordinato
- Orchestratore (pipeline.py)
"""

"""
Prompt per i provider LLM.

- Prompt F1: scomposizione prodotto alimentare (ingredienti + processo)
- Prompt N1: distinta base (BOM) prodotto non alimentare
- Prompt X1: estrazione LCA da testo libero e allegati
"""
import json
from typing import Any, Dict, List, Sequence

from composition.types import Candidate


def build_food_prompt(
    query: str,
    params: Dict[str, Any],
    context_text: str,
    candidates: Sequence[Candidate],
    process_types: Sequence[str],
) -> str:
    """
    Prompt F1: il modello restituisce un'istanza prodotto piatta.

    ``process.type`` è vincolato all'enum corrente del registro.
    """
    allowed = ", ".join(f"'{t}'" for t in process_types)
    candidates_json = json.dumps([c.to_prompt_dict() for c in candidates], indent=2, ensure_ascii=False)
    return f"""
You are a food production engineer.
User Query: "{query}"
Context Info: {json.dumps(params, ensure_ascii=False, default=str)}
Scraped Context: "{context_text}"
Potential Reference Products: {candidates_json}

Task: Decompose this food product into a valid Product Instance JSON object (flat structure, no root wrapper).
Expected Structure:
{{
  "category": "food",
  "name": "Product Name",
  "description": "Detailed description",
  "bio": false,
  "quantity": 0,
  "process": {{
      "type": "...",
      "inputInstances": [
          {{ "instance": {{ "name": "Ingredient Name", "category": "ingredient" }}, "quantity": 0.1 }}
      ]
  }}
}}

Rules:
1. Do not wrap the result in "product" or any other root key. Return the object directly.
2. 'process.type' strictly one of: [{allowed}].
3. Exclude 'harvest'/'sale' unless explicit.
4. Input instances from Context or candidates. Extract all ingredients found.
5. Quantity: real usage for parents, 0 if unknown (never 1000 default).
6. Price: Do not include.
7. IDs: Use candidates if matching.
Output JSON only.
"""


def build_non_food_prompt(query: str, process_types: Sequence[str]) -> str:
    """Prompt N1: scomposizione in materiali e componenti (pesi indicativi in grammi)."""
    allowed = ", ".join(f"'{t}'" for t in process_types)
    return f"""
You are an expert in product manufacturing and Bill of Materials (BOM).
Decompose the following non-food product into its likely material components and manufacturing processes.
Product: "{query}"

Return a JSON structure compliant with this interface:
{{
  "category": "category_name",
  "name": "{query}",
  "process": {{
      "type": "...",
      "inputInstances": [
         {{
           "quantity": 500,
           "instance": {{ "name": "Material 1", "category": "material", "bio": false }}
         }}
      ]
  }}
}}

Rules:
1. 'process.type' strictly one of: [{allowed}].
2. Quantities in grams; estimate weights for one typical unit.
3. Materials such as steel, plastic, glass, cotton, wood; components such as battery or screen.
Keep it simple but realistic. Output JSON only.
"""


def build_extraction_prompt(text: str, attachments: List[Dict[str, str]]) -> str:
    """Prompt X1: estrazione strutturata prodotto + processo da testo e allegati."""
    attachment_text = "\n\n".join(
        f"Attachment ({a.get('name', 'attachment')}):\n{a.get('content', '')}" for a in attachments
    )
    return f"""
You are an expert Life Cycle Assessment (LCA) data extractor.
Your task is to extract structured product and process information from the provided text and files.

Output Structure (JSON only):
{{
  "summary": "Brief summary of what was extracted (e.g. 'Found 1 product and 5 ingredients')",
  "populated": {{
    "instance": {{
      "name": "Product Name",
      "description": "Product Description usually including brand, weight, packaging info",
      "quantity": {{ "value": 1, "unit": "kg" }}
    }},
    "process": {{
      "name": "Production of [Product Name]",
      "inputInstances": [
        {{
          "name": "Ingredient/Input Name",
          "amount": {{ "value": 10, "unit": "g" }},
          "description": "Any details about origin, transport, or processing"
        }}
      ]
    }}
  }}
}}

Rules:
1. Extract as much detail as possible.
2. Normalize units to standard metric if possible (kg, g, l, ml, kWh).
3. If specific amounts aren't found, leave them null.
4. "inputInstances" should list ingredients, energy, transport, or packaging inputs.
5. Return ONLY raw JSON, no markdown formatting.

Input Text:
{text}

{attachment_text}
"""

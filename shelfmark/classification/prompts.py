"""
Classification Prompts

System instruction and retrieval-context templates for the
generative classification layer.
"""

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

from shelfmark.metadata.models import BookMetadata

if TYPE_CHECKING:
    from shelfmark.classification.cache import ClassificationCacheEntry


@dataclass
class PromptTemplates:
    """
    Collection of prompt templates for classification.
    """

    SYSTEM_PROMPT = """You are an expert Library Cataloger.
Your task is to enhance book metadata with accurate classifications.

Strictly follow these rules:
1. OUTPUT FORMAT: Return ONLY a valid JSON object. No markdown, no extra text.
2. DDC/LCC: Assign Dewey Decimal (ddc) and Library of Congress (lcc) classifications.
   - If you cannot determine with 80%+ confidence, set to null.
   - Use the REFERENCE EXAMPLES to match the style of similar books if provided.
3. CALL NUMBER: Generate a call_number following this pattern: DDC + first 3 letters of the author's last name (e.g., "650.1 NEW").
4. SUBJECTS: Generate 3-5 relevant Library of Congress Subject Headings as one semicolon-separated string.
5. CLASSIFICATION TRUST: Set classification_trust to 'low' if estimated, 'medium' if from known patterns.
6. AI LOG: Set ai_log to an array of strings describing what you added (e.g., ["Estimated DDC: 650.1", "Created call number"]).
{examples}"""

    # Retrieved cache rows, injected to keep call numbers consistent
    EXAMPLES_TEMPLATE = """
REFERENCE EXAMPLES FROM OUR LIBRARY (Follow this Style):
{lines}
"""

    EXAMPLE_LINE_TEMPLATE = '- "{title}" → DDC: {ddc}, Call Number: "{call_number}"'


def format_examples(examples: Sequence["ClassificationCacheEntry"]) -> str:
    """Render retrieved rows as the "Follow this Style" block; empty if none."""
    if not examples:
        return ""
    lines = "\n".join(
        PromptTemplates.EXAMPLE_LINE_TEMPLATE.format(
            title=example.title,
            ddc=example.ddc,
            call_number=example.call_number,
        )
        for example in examples
    )
    return PromptTemplates.EXAMPLES_TEMPLATE.format(lines=lines)


def build_system_prompt(examples: Sequence["ClassificationCacheEntry"] = ()) -> str:
    return PromptTemplates.SYSTEM_PROMPT.format(examples=format_examples(examples))


def build_user_prompt(record: BookMetadata) -> str:
    """Serialize the record the model should classify."""
    payload = record.to_dict()
    # Bookkeeping fields are ours, not the model's
    for key in ("ai_log", "enhanced_at", "is_ai_enhanced", "thumbnail"):
        payload.pop(key, None)
    return json.dumps(payload, ensure_ascii=False)

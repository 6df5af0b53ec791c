# =============================================================================
# studio/prompts.py - AI Studio Prompts
# =============================================================================
# Prompts for the two kinds of model calls the studio makes:
# - Catalogue photo transform (one image in, one image out)
# - Marketplace listing copy (JSON out), in augmented and quick variants
#
# Usage:
#   prompt = build_listing_prompt(facts="product_name: ...", augmented=True)
# =============================================================================

from __future__ import annotations

# =============================================================================
# Image Transform Prompt
# =============================================================================

CATALOGUE_PHOTO_PROMPT = """
You are a professional catalogue photographer documenting artwork and collectibles
for auction houses and online marketplaces.

Photograph THIS EXACT OBJECT. Absolute fidelity to the source is required:
- Do not alter the object itself: every stroke, colour, texture, signature and defect stays visible.
- If the object already has a frame, preserve it exactly (colour, material, style, wear).
- If it is unframed, present it on a clean gallery wall with a neutral, non-distracting background.
- Soft, diffused lighting; sharp focus on the object; a subtle realistic shadow for depth.

Return a single photorealistic PNG photograph.
""".strip()


# =============================================================================
# Listing Copy Prompts
# =============================================================================

LISTING_OUTPUT_FORMAT = """
<output_format>
Respond ONLY with a valid JSON object in English, no text before or after it:
{
  "listing_title": "SEO-ready marketplace listing title (include artist, style, medium)",
  "listing_description": "Professional, persuasive multi-paragraph listing body",
  "analysis_text": "Concise internal notes: estimated price range and the reasoning behind it",
  "sources": [{"title": "string", "url": "string"}]
}
</output_format>
""".strip()

AUGMENTED_INSTRUCTIONS = """
<role>
You are an expert appraiser and marketplace copywriter.
</role>

<research>
Use web search to research the item, its maker and comparable sales.
Cite every source you relied on in "sources". If the data is insufficient, say so
in analysis_text instead of guessing.
</research>
""".strip()

QUICK_INSTRUCTIONS = """
<role>
You are an expert marketplace copywriter.
</role>

<constraints>
Work only from the item facts below; do not invent provenance or prices you cannot
justify from them. Leave "sources" as an empty list.
</constraints>
""".strip()


def build_item_facts(
    product_name: str | None = None,
    description: str | None = None,
    product_id: str | None = None,
    extra: str | None = None,
) -> str:
    """
    Flatten locally known item facts into one line for the listing prompt.

    Example:
        build_item_facts("Oil on canvas", "Harbour scene", "A-102", "signed 1962")
        # "product_name: Oil on canvas; description: Harbour scene; product_id: A-102; signed 1962"
    """
    facts = (
        f"product_name: {product_name or ''}; "
        f"description: {description or ''}; "
        f"product_id: {product_id or ''}; "
        f"{extra or ''}"
    )
    return facts.strip().rstrip(";").strip()


def build_listing_prompt(facts: str | None, augmented: bool) -> str:
    """
    Build the listing-copy prompt.

    Args:
        facts: Item facts from build_item_facts() or the request
        augmented: True for the web-research variant, False for quick mode

    Returns:
        The full prompt text
    """
    instructions = AUGMENTED_INSTRUCTIONS if augmented else QUICK_INSTRUCTIONS

    return f"""{instructions}

<item_facts>
{facts or "No facts supplied."}
</item_facts>

{LISTING_OUTPUT_FORMAT}
"""

"""
Domain-specific content for the aerospace assistant: per-mode system contexts and prompt assembly.
"""

from typing import Optional

DEFAULT_CONTEXT = "You are CortexAI, an intelligent assistant for aerospace and aviation industries."

MODE_CONTEXTS = {
    "Marketplace": "You are an aerospace marketplace expert. Provide insights about aircraft parts, pricing, and market trends.",
    "Inventory": "You are an inventory management specialist for aerospace components. Help with stock levels, part numbers, and inventory optimization.",
    "Work Orders": "You are a work order management expert for MRO (Maintenance, Repair, and Overhaul) operations.",
    "Compliance": "You are a compliance specialist for aerospace regulations and standards (FAA, EASA, etc.).",
    "Financials": "You are a financial analyst specializing in aerospace economics and cost management.",
    "Purchasing": "You are a procurement specialist for aerospace parts and supplies.",
    "Parts Analyzer": "You are a technical expert analyzing aerospace parts, their specifications, and compatibility.",
}

CHAT_MODES = tuple(MODE_CONTEXTS)


def get_mode_context(mode: Optional[str]) -> str:
    """System context for a mode; unknown or missing modes get the default persona"""
    if not mode:
        return DEFAULT_CONTEXT
    return MODE_CONTEXTS.get(mode, DEFAULT_CONTEXT)


def build_prompt(message: str, mode: Optional[str] = None) -> str:
    """Full generation prompt for a user message in the given mode"""
    context = get_mode_context(mode)
    return f"{context}\n\nUser: {message}\n\nProvide a helpful, professional response:"

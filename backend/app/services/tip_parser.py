"""
Parses free-text LLM advice formatted as a numbered list into individual tips.
"""
import re
from typing import List, Optional

MIN_TIP_LENGTH = 5

# Introductory sentences the model tends to put before the list.
PREAMBLE_PHRASES = ("Based on your transaction data",)

_LIST_MARKER = re.compile(r"^\d+\.\s", re.MULTILINE)
_EDGE_ASTERISKS = re.compile(r"^\*+|\*+$")
_TRAILING_BOLD = re.compile(r"\*\*$")


def clean_tip(segment: str) -> Optional[str]:
    """Normalise one list segment, or return None if it is not a tip."""
    tip = segment.strip()
    if len(tip) < MIN_TIP_LENGTH:
        return None

    # Repeat until stable so cleaning an already-clean tip is a no-op.
    previous = None
    while tip != previous:
        previous = tip
        tip = _EDGE_ASTERISKS.sub("", tip).strip()
        # "**Title**: body" loses its closing bold marker before the colon
        tip = _TRAILING_BOLD.sub("", tip).replace("**:", ":").strip()

    if len(tip) < MIN_TIP_LENGTH:
        return None
    if tip.startswith(PREAMBLE_PHRASES):
        return None
    return tip


def parse_tips(text: Optional[str]) -> List[str]:
    """
    Split a numbered-list response into ordered tips.

    Segments shorter than MIN_TIP_LENGTH and introductory sentences are dropped.
    Parsing a re-numbered list of already-clean tips returns the same tips.
    """
    if not text:
        return []

    tips = []
    for segment in _LIST_MARKER.split(text):
        tip = clean_tip(segment)
        if tip is not None:
            tips.append(tip)
    return tips


def format_tips(tips: List[str]) -> str:
    """Render tips back as a numbered list."""
    return "\n".join(f"{index}. {tip}" for index, tip in enumerate(tips, start=1))

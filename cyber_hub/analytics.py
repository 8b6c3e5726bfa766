# cyber_hub/analytics.py
from dataclasses import dataclass
from typing import List

POSSIBLE_MITIGATIONS = (
    "Implement Layer-3 Encryption",
    "Deploy Quantum Firewalls",
    "Recalibrate Neural Uplink",
    "Enable Bio-metric Verification",
    "Isolate Sub-atomic Core",
    "Monitor Spectral Leakage",
    "Purge Buffer Overflows",
    "Sync Temporal Oscillators",
)


@dataclass(frozen=True)
class AiAnalytics:
    confidence: int
    suggestions: List[str]


def generate_deterministic_ai_data(invention_id: str, name: str) -> AiAnalytics:
    """
    Mock analysis shown on the invention detail view.

    Depends only on the lengths of the two strings: confidence lands in
    [75, 95] and the suggestions are a window of 3 starting at seed % 4.
    """
    seed = len(invention_id) + len(name)
    confidence = 75 + (seed % 21)
    start = seed % 4
    suggestions = list(POSSIBLE_MITIGATIONS[start:start + 3])
    return AiAnalytics(confidence=confidence, suggestions=suggestions)

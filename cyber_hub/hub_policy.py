# cyber_hub/hub_policy.py
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple

import commentjson

logger = logging.getLogger("cyber_hub")

ScoreRange = Tuple[int, int]


INITIAL_UPGRADES: List[Dict[str, Any]] = [
    {
        "id": "scanner",
        "name": "Neural Vulnerability Scanner",
        "description": "Enhances AI ability to detect hidden backdoors and exploits.",
        "level": 1,
        "maxLevel": 10,
        "cost": 100,
        "benefitLabel": "Audit Depth",
        "icon": "🔍",
    },
    {
        "id": "processor",
        "name": "Quantum Logic Processor",
        "description": "Increases the detail and coherence of synthesized reports.",
        "level": 1,
        "maxLevel": 10,
        "cost": 150,
        "benefitLabel": "Synthesis Speed",
        "icon": "💎",
    },
]

SYNTHESIS_FORMATS = ("Tactical Brief", "Community Post", "Technical Whitepaper")


@dataclass
class HubPolicy:
    """
    Tunable numbers of the hub economy and of invention scoring.

    Ranges are half-open [low, high), matching how synthesized inventions draw
    their scores. Manifested inventions use the fixed triple in `manifest_scores`
    (stability, output, sync).
    """

    initial_essence: int = 1000
    audit_reward: int = 75
    upgrade_cost_growth: float = 1.6

    stability_range: ScoreRange = (60, 90)
    output_range: ScoreRange = (50, 90)
    sync_range: ScoreRange = (70, 90)
    manifest_scores: Tuple[int, int, int] = (85, 70, 90)

    default_name: str = "Untitled Discovery"
    default_category: str = "Classified Tech"
    default_tags: List[str] = field(default_factory=lambda: ["CYBER", "QUANTUM"])
    manifest_category: str = "Visual Asset"
    manifest_tags: List[str] = field(default_factory=lambda: ["MANIFESTED", "VISUAL", "QUANTUM"])

    initial_upgrades: List[Dict[str, Any]] = field(default_factory=lambda: copy.deepcopy(INITIAL_UPGRADES))

    def fresh_upgrades(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self.initial_upgrades)


_RANGE_KEYS = ("stability_range", "output_range", "sync_range")


def load_hub_policy(path: str | None = None) -> HubPolicy:
    """
    Build the policy, overriding defaults from a JSON-with-comments file when a
    path is given. Unknown keys and malformed ranges fail fast.
    """
    policy = HubPolicy()
    if not path:
        return policy

    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Hub policy file not found at '{cfg_path}'.")

    with cfg_path.open("r", encoding="utf-8") as f:
        data = commentjson.load(f)

    if not isinstance(data, dict):
        raise ValueError("Hub policy file must hold a JSON object")

    for key, value in data.items():
        if not hasattr(policy, key):
            raise ValueError(f"Hub policy has no setting named: {key}")
        if key in _RANGE_KEYS:
            low, high = value
            if not (0 <= low < high <= 100):
                raise ValueError(f"Hub policy range {key} must satisfy 0 <= low < high <= 100, got {value}")
            value = (int(low), int(high))
        elif key == "manifest_scores":
            value = tuple(int(v) for v in value)
            if len(value) != 3:
                raise ValueError(f"Hub policy manifest_scores needs exactly 3 values, got {len(value)}")
        setattr(policy, key, value)

    logger.info(f"Loaded hub policy overrides from {cfg_path}: {sorted(data)}")
    return policy

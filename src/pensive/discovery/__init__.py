"""Discovery: the pathway-in, ranked-stories-out orchestration."""

from pensive.discovery.novelty import analyze_novelty, pair_combinations
from pensive.discovery.orchestrator import DiscoveryService
from pensive.discovery.prompt import EMPTY_PROMPT, generate_prompt

__all__ = [
    "EMPTY_PROMPT",
    "DiscoveryService",
    "analyze_novelty",
    "generate_prompt",
    "pair_combinations",
]

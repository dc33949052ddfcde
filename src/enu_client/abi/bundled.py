"""
ABIs of the system contracts shipped with the package.

The client seeds its ABI cache with these so that system and token actions
can be encoded without a network round trip.
"""

from __future__ import annotations
import json
from importlib import resources
from typing import Dict, List, Tuple

SYSTEM_CONTRACTS: Tuple[str, ...] = ("enumivo", "enu.token", "enu.null")


def load_bundled_abi(account: str) -> Dict:
    """Return the bundled ABI document for a system contract account."""
    if account not in SYSTEM_CONTRACTS:
        raise KeyError(f"No bundled ABI for '{account}'")
    path = resources.files(__package__).joinpath("contracts").joinpath(f"{account}.abi.json")
    text = path.read_text(encoding="utf-8")
    return json.loads(text)


def bundled_abis() -> List[Tuple[str, Dict]]:
    """``(account, abi)`` pairs in system contract order."""
    return [(account, load_bundled_abi(account)) for account in SYSTEM_CONTRACTS]

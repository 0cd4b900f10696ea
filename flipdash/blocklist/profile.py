"""
Plugin profile export -- the JSON file a flipping client imports to apply a
blocklist.
"""
from __future__ import annotations

import json
import re
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TIMEFRAME_MINUTES = 5
PROFILE_SUFFIX = ".profile.json"

_UNSAFE_FILENAME_RE = re.compile(r"[\\/:*?\"<>|\x00-\x1f]+")


class BlocklistProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    blocked_item_ids: list[int] = Field(default_factory=list, alias="blockedItemIds")
    timeframe: int = DEFAULT_TIMEFRAME_MINUTES
    f2p_only_mode: bool = Field(False, alias="f2pOnlyMode")
    sell_only_mode: bool = Field(False, alias="sellOnlyMode")


def build_profile(
    blocked_ids: Iterable[int],
    timeframe: int | None = None,
    f2p_only: bool = False,
) -> BlocklistProfile:
    # Deduplicated and sorted so the same blocklist always exports the same file.
    return BlocklistProfile(
        blocked_item_ids=sorted(set(blocked_ids)),
        timeframe=timeframe or DEFAULT_TIMEFRAME_MINUTES,
        f2p_only_mode=f2p_only,
    )


def profile_json(profile: BlocklistProfile) -> str:
    """Indented JSON with the camelCase keys the plugin expects."""
    return json.dumps(profile.model_dump(by_alias=True), indent=2)


def profile_filename(name: str) -> str:
    """``"100k-10m F2P"`` -> ``"100k-10m F2P.profile.json"``."""
    cleaned = _UNSAFE_FILENAME_RE.sub("-", name).strip(" .-") or "blocklist"
    return f"{cleaned}{PROFILE_SUFFIX}"

# splitroute/processing/allowlist.py

from __future__ import annotations

import copy

from splitroute.models import AllowList
from splitroute.processing.bucket import BlockMap


def build_allow_list(blocks: BlockMap) -> AllowList:
    """
    Keep retained blocks, ordered ascending by block key.

    The list holds copies, so later changes to ``blocks`` do not reach it.
    An empty result is valid; the caller decides how to present it.
    """
    return AllowList(tuple(
        copy.deepcopy(blocks[key]) for key in sorted(blocks) if blocks[key].retained
    ))

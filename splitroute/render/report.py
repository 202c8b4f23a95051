# splitroute/render/report.py

from __future__ import annotations

from pathlib import Path
from typing import Union

import pandas as pd

from splitroute.processing.bucket import BlockMap
from splitroute.processing.normalize import format_ipv4
from splitroute.utils.logging import get_logger

log = get_logger(__name__)

PathLike = Union[str, Path]

REPORT_COLUMNS = [
    "network",
    "prefix_len",
    "cidr",
    "status",
    "num_contributors",
    "contributors",
    "hostname",
    "sources",
    "conflict",
]


def blocks_to_dataframe(blocks: BlockMap) -> pd.DataFrame:
    """
    One row per candidate block, retained and excluded alike, in key order.
    """
    rows = []
    for key in sorted(blocks):
        b = blocks[key]
        rows.append({
            "network": format_ipv4(b.network),
            "prefix_len": b.prefix_len,
            "cidr": b.cidr,
            "status": b.status.value,
            "num_contributors": len(b.contributors),
            "contributors": " ".join(format_ipv4(a) for a in sorted(b.contributors)),
            "hostname": b.hostname,
            "sources": " ".join(sorted(b.provenance)),
            "conflict": str(b.conflict) if b.conflict else None,
        })
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def save_report(df: pd.DataFrame, path: PathLike) -> Path:
    """
    Write the block table as CSV, or JSON when the suffix is '.json'.
    """
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    if out_path.suffix.lower() == ".json":
        df.to_json(out_path, orient="records", indent=2)
    else:
        if out_path.suffix.lower() != ".csv":
            out_path = out_path.with_suffix(".csv")
        df.to_csv(out_path, index=False)

    log.info("Wrote block report (%d rows) to %s", len(df), out_path)
    return out_path

"""Match scan-station part ids against a customer's panel roster.

The packing station's scanner reports only the trailing characters of each
panel id, because the labels on the floor are shorter than the ids assigned
at intake. Matching is therefore done on a fixed-length suffix key.

Two panels belonging to different customers can share a suffix key. When
that happens a package is attributed to both customers and both count the
panel as packed. The risk is accepted in exchange for working with the
fixed-length scan hardware; raising ``SUFFIX_KEY_LENGTH`` narrows it for
installations whose labels carry more characters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from .domain import Package, PackStage, compute_pack_progress

SUFFIX_KEY_LENGTH = 5


def suffix_key(identifier: str, length: int = SUFFIX_KEY_LENGTH) -> str:
    """Return the last ``length`` characters of an identifier.

    Ids that are already at most ``length`` characters long come back
    unchanged, so applying the function to a scanner-reported id is a no-op.
    """

    if length <= 0:
        raise ValueError("Suffix key length must be positive")
    identifier = identifier.strip()
    return identifier[-length:]


def suggest_pack_stage(packed_count: int, total_parts: int) -> PackStage:
    """Pack stage implied by scan data alone; never ARCHIVED."""

    if total_parts <= 0 or packed_count <= 0:
        return PackStage.NOT_PACKED
    if compute_pack_progress(packed_count, total_parts) >= 100:
        return PackStage.PACKED
    return PackStage.IN_PROGRESS


@dataclass(slots=True)
class ReconciliationResult:
    """Outcome of matching one roster against the known scan records."""

    packed_count: int
    total_parts: int
    pack_progress: int
    pack_stage_suggestion: PackStage
    pack_seqs: List[str] = field(default_factory=list)
    matched_part_ids: List[str] = field(default_factory=list)
    unmatched_part_ids: List[str] = field(default_factory=list)


def build_suffix_index(
    panel_ids: Iterable[str], length: int = SUFFIX_KEY_LENGTH
) -> Dict[str, List[str]]:
    """Map every suffix key to the roster ids that end with it."""

    index: Dict[str, List[str]] = {}
    for panel_id in panel_ids:
        index.setdefault(suffix_key(panel_id, length), []).append(panel_id)
    return index


def reconcile(
    panel_ids: Sequence[str],
    packages: Sequence[Package],
    *,
    key_length: int = SUFFIX_KEY_LENGTH,
) -> ReconciliationResult:
    """Compute packing progress for one customer from all known packages."""

    roster = list(dict.fromkeys(panel_ids))
    index = build_suffix_index(roster, key_length)

    scanned_keys = set()
    pack_seqs: List[str] = []
    for package in packages:
        keys = {suffix_key(part_id, key_length) for part_id in package.part_ids if part_id}
        scanned_keys.update(keys)
        if package.pack_seq and package.pack_seq not in pack_seqs:
            if any(key in index for key in keys):
                pack_seqs.append(package.pack_seq)

    matched: List[str] = []
    unmatched: List[str] = []
    for panel_id in roster:
        if suffix_key(panel_id, key_length) in scanned_keys:
            matched.append(panel_id)
        else:
            unmatched.append(panel_id)

    total_parts = len(roster)
    packed_count = len(matched)
    return ReconciliationResult(
        packed_count=packed_count,
        total_parts=total_parts,
        pack_progress=compute_pack_progress(packed_count, total_parts),
        pack_stage_suggestion=suggest_pack_stage(packed_count, total_parts),
        pack_seqs=pack_seqs,
        matched_part_ids=matched,
        unmatched_part_ids=unmatched,
    )


__all__ = [
    "SUFFIX_KEY_LENGTH",
    "suffix_key",
    "suggest_pack_stage",
    "build_suffix_index",
    "reconcile",
    "ReconciliationResult",
]

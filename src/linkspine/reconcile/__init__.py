"""Reconciliation: converge link and select fields to what the keys imply."""

from linkspine.reconcile.links import (
    LinkPlan,
    LinkSynchronizer,
    SyncResult,
    sync_back_references,
    sync_forward_lookup_links,
    sync_next_version_links,
    sync_parent_child_links,
    sync_peer_links,
)
from linkspine.reconcile.presets import PRESETS, LinkMode, LinkPreset, get_preset
from linkspine.reconcile.pruning import plan_superseded_deletions, prune_superseded
from linkspine.reconcile.select import run_select_mirrors, sync_select_mirrors

__all__ = [
    "PRESETS",
    "LinkMode",
    "LinkPlan",
    "LinkPreset",
    "LinkSynchronizer",
    "SyncResult",
    "get_preset",
    "plan_superseded_deletions",
    "prune_superseded",
    "run_select_mirrors",
    "sync_back_references",
    "sync_forward_lookup_links",
    "sync_next_version_links",
    "sync_parent_child_links",
    "sync_peer_links",
    "sync_select_mirrors",
]

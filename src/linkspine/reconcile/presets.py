"""Named link configurations for the release-tracking base.

Each preset pins a linking mode to concrete tables and fields so a run is
one name on the command line::

    linkspine link preset builds-deploys
    linkspine link preset integrations-to-builds

Adding a table is adding an entry to :data:`PRESETS`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from linkspine.core.errors import InvalidConfigError
from linkspine.core.protocols import RecordPredicate
from linkspine.reconcile.filters import all_of, equals, not_contains

if TYPE_CHECKING:
    from linkspine.reconcile.links import LinkSynchronizer, SyncResult

VERSION_FIELD = "Build Version (Unified)"


class LinkMode(str, Enum):
    PEER = "peer"
    PARENT_CHILD = "parent-child"
    FORWARD_LOOKUP = "forward-lookup"
    NEXT_VERSION = "next-version"


def scheduled_release(marker: str = "HF") -> RecordPredicate:
    """Builds synced from the deploy schedule that are not hotfixes."""
    return all_of(
        equals("Sync Source", "Scheduled Deploys"),
        not_contains("Release Version", marker),
    )


@dataclass(frozen=True)
class LinkPreset:
    """One named linking configuration."""

    name: str
    mode: LinkMode
    table: str
    link_field: str
    description: str
    key_field: str = VERSION_FIELD
    target_table: str | None = None
    target_key_field: str | None = None
    target_view: str | None = None
    target_filter: RecordPredicate | None = None
    back_link_field: str | None = None
    child_marker_field: str | None = None
    at_most_one: bool = False
    live_date_field: str | None = None
    candidate: RecordPredicate | None = None

    async def run(self, sync: LinkSynchronizer) -> SyncResult:
        if self.mode is LinkMode.PEER:
            return await sync.run_peer_links(
                self.table, self.key_field, self.link_field, name=self.name
            )
        if self.mode is LinkMode.PARENT_CHILD:
            return await sync.run_parent_child_links(
                self.table,
                self.key_field,
                self.link_field,
                child_marker_field=self.child_marker_field,
                name=self.name,
            )
        if self.mode is LinkMode.FORWARD_LOOKUP:
            if self.target_table is None:
                raise InvalidConfigError("target_table", None, f"Preset {self.name!r} needs a target table")
            return await sync.run_forward_lookup_links(
                self.table,
                self.target_table,
                self.key_field,
                self.link_field,
                target_key_field=self.target_key_field,
                target_filter=self.target_filter,
                target_view=self.target_view,
                at_most_one=self.at_most_one,
                back_link_field=self.back_link_field,
                name=self.name,
            )
        if self.live_date_field is None:
            raise InvalidConfigError("live_date_field", None, f"Preset {self.name!r} needs a live date field")
        return await sync.run_next_version_links(
            self.table,
            self.key_field,
            self.live_date_field,
            self.link_field,
            candidate=self.candidate,
            name=self.name,
        )


def _builds_link(source: str, back_link_field: str, description: str) -> LinkPreset:
    return LinkPreset(
        name=f"{source.lower()}-to-builds",
        mode=LinkMode.FORWARD_LOOKUP,
        table=source,
        link_field="Linked Build",
        target_table="Builds",
        target_filter=scheduled_release(),
        back_link_field=back_link_field,
        at_most_one=True,
        description=description,
    )


PRESETS: dict[str, LinkPreset] = {
    preset.name: preset
    for preset in [
        LinkPreset(
            name="builds-deploys",
            mode=LinkMode.PEER,
            table="Builds",
            link_field="Linked Deploys",
            description="Links build records that share a version",
        ),
        LinkPreset(
            name="builds-milestones",
            mode=LinkMode.PARENT_CHILD,
            table="Builds",
            link_field="Linked Milestones",
            child_marker_field="Milestone Type",
            description="Links milestone rows to their parent build row",
        ),
        _builds_link("Integrations", "Integrations", "Links integrations to their parent build"),
        _builds_link("Hotfixes", "Hotfixes", "Links hotfixes to their parent build"),
        LinkPreset(
            name="incidents-to-builds",
            mode=LinkMode.FORWARD_LOOKUP,
            table="ShitHappens",
            link_field="Linked Build",
            target_table="Builds",
            target_filter=scheduled_release(),
            back_link_field="ShitHappens",
            at_most_one=True,
            description="Links incident records to their parent build",
        ),
        LinkPreset(
            name="integrations-light",
            mode=LinkMode.FORWARD_LOOKUP,
            table="Integrations",
            link_field="Linked Build",
            target_table="Builds",
            target_view="Version Report",
            target_key_field="Release Version",
            at_most_one=True,
            description="Links integrations to the build listed in the Version Report view",
        ),
        LinkPreset(
            name="builds-next-version",
            mode=LinkMode.NEXT_VERSION,
            table="Builds",
            link_field="Next Version",
            live_date_field="Live Date",
            candidate=all_of(
                equals("Sync Source", "Scheduled Deploys"),
                equals("Deploy Type", "Major Release"),
            ),
            description="Links each release to the next major release to go live",
        ),
    ]
}


def get_preset(name: str) -> LinkPreset:
    try:
        return PRESETS[name]
    except KeyError:
        raise InvalidConfigError(
            "preset", name, f"Unknown preset {name!r}. Available: {', '.join(sorted(PRESETS))}"
        ) from None

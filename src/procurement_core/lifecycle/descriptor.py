"""Per-entity configuration for the generic lifecycle engine."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.cache.service import entity_key
from procurement_core.notifications.models import NotificationType

SnapshotHook = Callable[[AsyncSession, Any], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class NotificationTemplate:
    """Title plus a ``str.format`` message over the entity's template values."""
    type: NotificationType
    title: str
    message: str

    def render(self, values: Mapping[str, Any]) -> tuple[str, str]:
        return self.title, self.message.format_map(dict(values))


@dataclass(frozen=True)
class EntityDescriptor:
    """Everything that differs between suppliers, contracts and payments.

    ``transitions`` maps a current status to the statuses reachable from it;
    statuses absent from the map are terminal.
    """
    model: type
    entity_type: str
    label: str
    cache_prefix: str
    list_prefix: str
    owner_field: str
    notes_field: str
    initial_status: str
    approved_status: str
    rejected_status: str
    transitions: Mapping[str, frozenset[str]]
    event_name: str
    created: NotificationTemplate
    approved: NotificationTemplate
    rejected: NotificationTemplate
    status_templates: Mapping[str, NotificationTemplate] = field(default_factory=dict)
    approval_statuses: frozenset[str] = frozenset()
    specialist_deletable: frozenset[str] = frozenset()
    dependents: tuple[tuple[type, str], ...] = ()
    serialize: SnapshotHook | None = None
    template_values: SnapshotHook | None = None

    @property
    def resource(self) -> str:
        """Resource name used for role-based grants."""
        return self.list_prefix

    @property
    def list_pattern(self) -> str:
        return f"{self.list_prefix}:*"

    def entity_key(self, entity_id: str) -> str:
        return entity_key(self.cache_prefix, entity_id)

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.transitions.get(current, frozenset())

    def stamps_approval(self, status: str) -> bool:
        return status == self.approved_status or status in self.approval_statuses

"""Collaborators the device agent consumes but does not implement.

Platform code (package manager, call-log and contacts providers, camera,
file browser) plugs in behind these protocols.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

from ..core.commands import Command
from ..core.exceptions import RelayError
from ..integrations.chat.models import OutboundMessage


class SourceError(RelayError):
    """A device data provider failed while being read."""


@dataclass(frozen=True)
class Contact:
    name: Optional[str]
    numbers: tuple[str, ...] = field(default_factory=tuple)


class AppLabelResolver(Protocol):
    def label_for(self, pkg: str) -> Optional[str]: ...


class CallLogSource(Protocol):
    def recent_calls(self) -> Optional[Iterable[Mapping[str, Any]]]:
        """Call entries newest first; ``None`` when the provider is unavailable."""
        ...


class ContactsSource(Protocol):
    def contacts(self) -> Optional[Iterable[Contact]]:
        """Contacts in display order; ``None`` when the provider is unavailable."""
        ...


class DeviceActions(Protocol):
    """Capture, listing and file actions executed by platform code."""

    async def perform(self, command: Command) -> Sequence[OutboundMessage]: ...


class StaticAppLabels:
    def __init__(self, labels: Optional[Mapping[str, str]] = None) -> None:
        self._labels = dict(labels or {})

    def label_for(self, pkg: str) -> Optional[str]:
        return self._labels.get(pkg)


class EmptyCallLogSource:
    def recent_calls(self) -> Optional[Iterable[Mapping[str, Any]]]:
        return None


class EmptyContactsSource:
    def contacts(self) -> Optional[Iterable[Contact]]:
        return None


def resolve_label(resolver: AppLabelResolver, pkg: str) -> str:
    label = resolver.label_for(pkg)
    return label if label else pkg

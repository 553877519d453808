"""Per-call context handed to every handler."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from .config import EngineConfig
from .guard import CreationGuard
from .lifecycle import DocumentLifecycle
from .references import ReferenceSequencer
from .resolver import ClientResolver
from .store import OwnerScope


@dataclass
class Services:
    """Long-lived collaborators shared by all calls, owned by the service root."""

    config: EngineConfig
    guard: CreationGuard
    sequencer: ReferenceSequencer
    resolver: ClientResolver
    lifecycle: DocumentLifecycle


@dataclass
class HandlerContext:
    owner_id: str
    function_name: str
    store: OwnerScope
    services: Services
    log: structlog.BoundLogger

    @property
    def config(self) -> EngineConfig:
        return self.services.config

    @property
    def guard(self) -> CreationGuard:
        return self.services.guard

    @property
    def sequencer(self) -> ReferenceSequencer:
        return self.services.sequencer

    @property
    def resolver(self) -> ClientResolver:
        return self.services.resolver

    @property
    def lifecycle(self) -> DocumentLifecycle:
        return self.services.lifecycle

"""Service root: builds the long-lived collaborators and the dispatcher."""

from __future__ import annotations

from datetime import date
from typing import Callable, Optional

from .config import EngineConfig, load_config
from .context import Services
from .dispatcher import CommandDispatcher
from .guard import CreationGuard
from .handlers import register_handlers
from .lifecycle import DocumentLifecycle
from .references import ReferenceSequencer
from .resolver import ClientResolver
from .store import Datastore


def build_services(
    config: Optional[EngineConfig] = None,
    guard: Optional[CreationGuard] = None,
    today: Callable[[], date] = date.today,
) -> Services:
    """Wire the shared collaborators from configuration.

    Args:
        config: Engine configuration. Read from the environment when omitted.
        guard: Creation guard to share. A new one is built when omitted.
        today: Source of the current date, for reproducible references.
    """
    config = config or load_config()
    sequencer = ReferenceSequencer(config.default_reference_format, today=today)
    return Services(
        config=config,
        guard=guard
        or CreationGuard(
            grace_period=config.creation_grace_seconds,
            stale_after=config.creation_stale_seconds,
        ),
        sequencer=sequencer,
        resolver=ClientResolver(),
        lifecycle=DocumentLifecycle(
            sequencer,
            recent_window=config.recent_document_window,
            payment_terms_days=config.payment_terms_days,
            today=today,
        ),
    )


def build_dispatcher(
    datastore: Datastore,
    config: Optional[EngineConfig] = None,
    guard: Optional[CreationGuard] = None,
    today: Callable[[], date] = date.today,
) -> CommandDispatcher:
    """Dispatcher with every catalog function registered."""
    dispatcher = CommandDispatcher(datastore, build_services(config, guard, today))
    return register_handlers(dispatcher)

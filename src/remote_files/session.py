"""File session — wires the resource management core for one authenticated user."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from remote_files.gateway.storage import StorageGateway, storage_gateway_from_config
from remote_files.navigation.navigator import ErrorHandler, ResourceNavigator
from remote_files.navigation.selection import SelectionManager
from remote_files.operations.batch import BatchCoordinator
from remote_files.operations.engine import MutationEngine

if TYPE_CHECKING:
    from remote_files.auth import AuthenticationContext
    from remote_files.config import AppConfig
    from remote_files.operations.conflicts import DecisionSource

logger = logging.getLogger(__name__)


@dataclass
class FileSession:
    """Every core component for one user, sharing a gateway and a navigator."""

    auth: AuthenticationContext
    gateway: StorageGateway
    navigator: ResourceNavigator
    selection: SelectionManager
    engine: MutationEngine
    batch: BatchCoordinator


def build_file_session(
    gateway: StorageGateway,
    auth: AuthenticationContext,
    decide: DecisionSource,
    on_error: ErrorHandler | None = None,
) -> FileSession:
    """Wire the core around an existing gateway.

    The selection is pruned every time the navigator replaces the current
    listing, so it never holds resources that are no longer shown.
    """
    navigator = ResourceNavigator(gateway, on_error=on_error)
    selection = SelectionManager()
    navigator.add_listener(selection.prune)
    engine = MutationEngine(gateway, navigator, decide, auth=auth)
    batch = BatchCoordinator(engine, selection)
    logger.info(
        "[build_file_session] session ready; user:%s;role:%s;container:%s",
        auth.username,
        auth.role,
        gateway.container,
    )
    return FileSession(
        auth=auth,
        gateway=gateway,
        navigator=navigator,
        selection=selection,
        engine=engine,
        batch=batch,
    )


def file_session_from_config(
    config: AppConfig,
    auth: AuthenticationContext,
    decide: DecisionSource,
    on_error: ErrorHandler | None = None,
) -> FileSession:
    """Construct a FileSession from application configuration.

    Args:
        config: Application configuration instance.
        auth: Identity and session credential of the current user.
        decide: Source of conflict decisions (a modal, or a fixed policy).
        on_error: Optional callback receiving listing fetch errors.

    Returns:
        Configured FileSession instance.
    """
    gateway = storage_gateway_from_config(config, auth)
    return build_file_session(gateway, auth, decide, on_error=on_error)

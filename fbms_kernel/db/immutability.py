"""
ORM-Level Immutability Enforcement.

===============================================================================
WHAT IS PROTECTED
===============================================================================

Journal entries, journal lines and stock movements are append-only.  Once a
row is flushed it may never be updated or deleted; corrections are new rows
(a reversing entry, a compensating movement).

Entity              | Registered by
--------------------|-------------------------------------------
JournalEntry        | this module
JournalLine         | this module
StockMovement       | fbms_modules.inventory.orm (mark_append_only)

Modules outside the kernel call ``mark_append_only(Model, "Entity")`` at
import time; the kernel never imports them.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update / before_delete] --> _reject_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
USAGE
===============================================================================

    from fbms_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from fbms_kernel.exceptions import ImmutabilityViolationError
from fbms_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Model class -> entity type name used in errors and logs
_APPEND_ONLY: dict[type, str] = {}


def mark_append_only(model: type, entity_type: str) -> None:
    """Declare an ORM model append-only.

    Takes effect on the next ``register_immutability_listeners()`` call.
    """
    _APPEND_ONLY[model] = entity_type


def _entity_type_of(target) -> str:
    for model, entity_type in _APPEND_ONLY.items():
        if isinstance(target, model):
            return entity_type
    return type(target).__name__


def _reject_update(mapper, connection, target):
    entity_type = _entity_type_of(target)
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} records are append-only and cannot be modified",
    )


def _reject_delete(mapper, connection, target):
    entity_type = _entity_type_of(target)
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} records are append-only and cannot be deleted",
    )


def _register_kernel_models() -> None:
    from fbms_kernel.models.journal import JournalEntryModel, JournalLineModel

    mark_append_only(JournalEntryModel, "JournalEntry")
    mark_append_only(JournalLineModel, "JournalLine")


def register_immutability_listeners() -> None:
    """
    Register immutability listeners on every append-only model.

    Call after all models are imported and before any database operation.
    Safe to call more than once.
    """
    _register_kernel_models()
    for model in _APPEND_ONLY:
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that need to violate immutability on
    purpose to verify detection.
    """
    for model in _APPEND_ONLY:
        _safe_remove_listener(model, "before_update", _reject_update)
        _safe_remove_listener(model, "before_delete", _reject_delete)

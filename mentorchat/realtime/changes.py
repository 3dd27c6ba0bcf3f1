import logging

from sqlalchemy import event, inspect as sa_inspect
from sqlalchemy.orm import Session, object_session

from mentorchat.models import Message

from .hub import get_hub

logger = logging.getLogger(__name__)

PENDING_CHANGES_KEY = "realtime_pending_changes"
TARGET_HUB_KEY = "realtime_hub"

_installed = False


def row_snapshot(target) -> dict:
    state = target.__dict__
    return {attr.key: state.get(attr.key) for attr in sa_inspect(type(target)).column_attrs}


def _record_message_insert(mapper, connection, target):
    session = object_session(target)
    if session is None:
        return
    session.info.setdefault(PENDING_CHANGES_KEY, []).append(
        {"table": "messages", "event": "INSERT", "new": row_snapshot(target)}
    )


def _publish_pending(session):
    changes = session.info.pop(PENDING_CHANGES_KEY, [])
    if not changes:
        return
    hub = session.info.get(TARGET_HUB_KEY) or get_hub()
    for change in changes:
        logger.debug(f"Publishing {change['event']} on {change['table']}")
        hub.publish(change)


def _discard_pending(session):
    session.info.pop(PENDING_CHANGES_KEY, None)


def bind_hub(session, hub) -> None:
    """Routes the session's committed changes to ``hub`` instead of the global one."""
    session.info[TARGET_HUB_KEY] = hub


def install_change_feed() -> None:
    """Publishes message inserts to the realtime hub once their transaction commits."""
    global _installed
    if _installed:
        return
    event.listen(Message, "after_insert", _record_message_insert)
    event.listen(Session, "after_commit", _publish_pending)
    event.listen(Session, "after_rollback", _discard_pending)
    _installed = True

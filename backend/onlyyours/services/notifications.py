"""Best-effort user notifications.

Push and email delivery live outside this service. Here a notification is
logged and mirrored to the user's private room; the caller never waits on it
and a delivery failure is only logged.
"""

from typing import Any, Dict, Optional

from flask import current_app

from onlyyours import socketio
from onlyyours.channels import NAMESPACE, NOTIFICATION, user_room


def _deliver(app, user_id, title: str, body: str, data: Optional[Dict[str, Any]]) -> None:
    try:
        app.logger.info(f"[notify] user={user_id} title={title!r}")
        socketio.emit(
            NOTIFICATION,
            {'title': title, 'body': body, 'data': data or {}},
            to=user_room(user_id),
            namespace=NAMESPACE,
        )
    except Exception as exc:
        app.logger.warning(f"[notify-failed] user={user_id} error={exc}")


def notify(user_id, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> None:
    app = current_app._get_current_object()
    if app.config.get('TESTING'):
        _deliver(app, user_id, title, body, data)
        return
    socketio.start_background_task(_deliver, app, user_id, title, body, data)

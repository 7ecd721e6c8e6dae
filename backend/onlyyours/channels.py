"""Socket.IO channel naming shared by the router and background emitters."""

NAMESPACE = '/ws'

# Private per-user events
GAME_EVENTS = 'game_events'
GAME_STATUS = 'game_status'
ERRORS = 'errors'
NOTIFICATION = 'notification'
# Shared per-session broadcast
GAME_BROADCAST = 'game_broadcast'


def user_room(user_id) -> str:
    return f"user:{user_id}"


def game_room(session_id) -> str:
    return f"game:{session_id}"

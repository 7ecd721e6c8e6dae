"""Game error taxonomy.

Every error raised by the game services derives from :class:`GameError` and
carries a ``kind`` so the socket router and the query blueprint can translate
it without inspecting messages.
"""


class GameError(Exception):
    kind = 'error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'kind': self.kind, 'message': self.message}


class ValidationError(GameError):
    kind = 'validation'


class InvalidAnswer(ValidationError):
    pass


class NotFoundError(GameError):
    kind = 'not_found'


class StateConflictError(GameError):
    kind = 'conflict'


class ActiveSessionExists(GameError):
    kind = 'active_session_exists'

    def __init__(self, session_id: str):
        super().__init__(f'An active game session already exists: {session_id}')
        self.session_id = session_id

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload['sessionId'] = self.session_id
        return payload


class SessionExpired(GameError):
    kind = 'expired'

    def __init__(self, session_id: str):
        super().__init__(f'Game session expired: {session_id}')
        self.session_id = session_id

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload['sessionId'] = self.session_id
        return payload

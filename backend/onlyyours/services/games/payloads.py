"""Outbound payloads of the game engine.

Plain immutable records. ``to_dict`` renders the camelCase shape clients
receive and tags each event with its ``type``.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in rest)


def _render(value):
    if isinstance(value, Payload):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_render(v) for v in value]
    return value


class Payload:
    event_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {_camel(f.name): _render(getattr(self, f.name)) for f in fields(self)}
        if self.event_type:
            data['type'] = self.event_type
        return data


@dataclass(frozen=True)
class InvitationPayload(Payload):
    event_type = 'INVITATION'
    session_id: str
    category_id: int
    category_name: str
    category_description: Optional[str]
    is_sensitive: bool
    inviter_id: int
    inviter_name: str
    timestamp: int


@dataclass(frozen=True)
class StatusPayload(Payload):
    event_type = 'STATUS'
    session_id: Optional[str]
    status: str
    message: str
    event_name: Optional[str] = None
    timestamp: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'type': 'STATUS', 'sessionId': self.session_id, 'status': self.status, 'message': self.message}
        if self.event_name:
            data['eventType'] = self.event_name
        if self.timestamp is not None:
            data['timestamp'] = self.timestamp
        return data


@dataclass(frozen=True)
class QuestionPayload(Payload):
    event_type = 'QUESTION'
    session_id: str
    question_id: int
    question_number: int
    total_questions: int
    question_text: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    round: str


@dataclass(frozen=True)
class GuessResultPayload(Payload):
    event_type = 'GUESS_RESULT'
    session_id: str
    question_id: int
    question_number: int
    question_text: str
    your_guess: str
    partner_answer: str
    correct: bool
    correct_count: int


@dataclass(frozen=True)
class GameResultsPayload(Payload):
    event_type = 'GAME_RESULTS'
    session_id: str
    player1_name: str
    player1_score: int
    player2_name: str
    player2_score: int
    total_questions: int
    message: str


@dataclass(frozen=True)
class ErrorPayload(Payload):
    event_type = 'ERROR'
    message: str
    timestamp: int
    kind: str = 'error'
    session_id: Optional[str] = None


@dataclass(frozen=True)
class ActiveSessionSummary(Payload):
    session_id: str
    status: str
    round: str
    category_id: int
    current_question_number: Optional[int]
    total_questions: int
    partner_name: str
    created_at: Optional[int]
    started_at: Optional[int]
    completed_at: Optional[int]
    expires_at: Optional[int]
    last_activity_at: Optional[int]
    can_continue: bool = True


@dataclass(frozen=True)
class HistoryItem(Payload):
    session_id: str
    completed_at: Optional[int]
    my_score: int
    partner_score: int
    partner_name: str
    category_id: int
    result: str


@dataclass(frozen=True)
class HistoryPage(Payload):
    items: List[HistoryItem] = field(default_factory=list)
    page: int = 0
    size: int = 10
    total_elements: int = 0
    total_pages: int = 0
    has_next: bool = False


@dataclass(frozen=True)
class DashboardStats(Payload):
    games_played: int
    average_score: float
    best_score: int
    streak_days: int
    invitation_acceptance_rate: float
    avg_invitation_response_seconds: float


@dataclass(frozen=True)
class Badge(Payload):
    code: str
    title: str
    description: str
    earned_at: Optional[int]

from collections import defaultdict
from typing import Iterable, Tuple

from onlyyours.models import GameAnswer
from . import answers


def result_message(combined_score: int) -> str:
    """Closing line for a combined score out of 16."""
    if combined_score >= 14:
        return "Soulmates! You know each other perfectly!"
    if combined_score >= 10:
        return "Great connection! You really know each other."
    if combined_score >= 6:
        return "Good start! Keep playing to learn more."
    return "Lots to discover about each other!"


def score_answers(records: Iterable[GameAnswer], player1_id, player2_id) -> Tuple[int, int]:
    """Count correct Round 2 guesses per player.

    A question only scores when both players have a row for it; a player is
    correct when their guess equals the partner's Round 1 answer.
    """
    by_question = defaultdict(dict)
    for record in records:
        by_question[record.question_id][record.user_id] = record

    player1_score = 0
    player2_score = 0
    for rows in by_question.values():
        p1 = rows.get(player1_id)
        p2 = rows.get(player2_id)
        if p1 is None or p2 is None:
            continue
        if p1.round2_guess is not None and p1.round2_guess == p2.round1_answer:
            player1_score += 1
        if p2.round2_guess is not None and p2.round2_guess == p1.round1_answer:
            player2_score += 1
    return player1_score, player2_score


def correct_guess_count(session_id, user_id, partner_id) -> int:
    # Recomputed from stored rows on every call; replays cannot drift it.
    count = 0
    for guess in answers.guessed_records(session_id, user_id):
        partner = answers.find_record(session_id, guess.question_id, partner_id)
        if partner is not None and guess.round2_guess == partner.round1_answer:
            count += 1
    return count

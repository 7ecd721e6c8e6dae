from typing import List, Optional

from onlyyours import db
from onlyyours.models import Question, QuestionCategory


def get_category(category_id) -> Optional[QuestionCategory]:
    return db.session.get(QuestionCategory, category_id)


def count_questions(category_id) -> int:
    return Question.query.filter_by(category_id=category_id).count()


def questions_for_category(category_id) -> List[Question]:
    return Question.query.filter_by(category_id=category_id).order_by(Question.id).all()


def get_question(question_id) -> Optional[Question]:
    return db.session.get(Question, question_id)

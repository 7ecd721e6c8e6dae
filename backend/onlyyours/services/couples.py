from typing import Optional

from onlyyours.models import Couple


def find_couple_for_user(user_id) -> Optional[Couple]:
    return Couple.query.filter((Couple.user1_id == user_id) | (Couple.user2_id == user_id)).first()


def partner_id_for(user_id):
    """Return the linked partner's user id, or None when the user is single."""
    couple = find_couple_for_user(user_id)
    if couple is None:
        return None
    return couple.partner_id_of(user_id)

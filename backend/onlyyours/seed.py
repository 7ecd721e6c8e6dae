from onlyyours import db
from onlyyours.models import User, Couple, QuestionCategory, Question

DEMO_QUESTIONS = [
    ('What is my ideal weekend?', 'Hiking', 'Movie marathon', 'Brunch with friends', 'Sleeping in'),
    ('Which cuisine would I pick tonight?', 'Italian', 'Japanese', 'Mexican', 'Indian'),
    ('How do I recharge after a long day?', 'Music', 'A walk', 'A bath', 'Video games'),
    ('What would I do with a surprise day off?', 'Travel', 'Read', 'Cook', 'Nap'),
    ('Which season do I love most?', 'Spring', 'Summer', 'Autumn', 'Winter'),
    ('What is my go-to comfort drink?', 'Tea', 'Coffee', 'Hot chocolate', 'Smoothie'),
    ('Which superpower would I choose?', 'Flying', 'Invisibility', 'Time travel', 'Telepathy'),
    ('How do I prefer to celebrate?', 'Big party', 'Quiet dinner', 'Adventure trip', 'Stay home'),
    ('Which pet would I adopt?', 'Dog', 'Cat', 'Parrot', 'Turtle'),
    ('What is my dream holiday spot?', 'Beach', 'Mountains', 'City break', 'Countryside'),
]


def seed_demo_data():
    """Seed two linked users and one category with enough questions for a game."""
    alex = User(username='alex', name='Alex')
    alex.set_password('password')
    sam = User(username='sam', name='Sam')
    sam.set_password('password')
    db.session.add_all([alex, sam])
    db.session.flush()
    db.session.add(Couple(user1_id=alex.id, user2_id=sam.id))

    category = QuestionCategory(name='Getting to know you', description='Everyday preferences', is_sensitive=False)
    db.session.add(category)
    db.session.flush()
    for text, a, b, c, d in DEMO_QUESTIONS:
        db.session.add(Question(category_id=category.id, text=text, option_a=a, option_b=b, option_c=c, option_d=d))
    db.session.commit()

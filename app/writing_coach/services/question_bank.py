"""Sample IELTS Writing Task 2 questions for practice sessions."""
import random
from typing import Any, Dict, List, Optional

SAMPLE_QUESTIONS: List[Dict[str, Any]] = [
    {
        'id': 1,
        'question': (
            "Some people believe that technology has made our lives more complicated. "
            "Others argue that it has made life easier. Discuss both views and give your own opinion."
        ),
        'type': 'opinion',
        'topic': 'technology',
        'difficulty': 'intermediate',
    },
    {
        'id': 2,
        'question': (
            "In many countries, the amount of crime is increasing. What do you think are the main "
            "causes of crime? How can we deal with those causes?"
        ),
        'type': 'problem_solution',
        'topic': 'social_issues',
        'difficulty': 'intermediate',
    },
    {
        'id': 3,
        'question': (
            "Some people think that universities should provide graduates with the knowledge and skills "
            "needed in the workplace. Others think that the true function of a university should be to "
            "give access to knowledge for its own sake. Discuss both sides and give your opinion."
        ),
        'type': 'opinion',
        'topic': 'education',
        'difficulty': 'advanced',
    },
    {
        'id': 4,
        'question': (
            "The rise of social media has affected personal relationships and society as a whole. "
            "Do the advantages of social media outweigh the disadvantages?"
        ),
        'type': 'advantages_disadvantages',
        'topic': 'social_media',
        'difficulty': 'intermediate',
    },
    {
        'id': 5,
        'question': (
            "Some people believe that children should be taught to compete in school while others "
            "believe they should be taught to cooperate. What is your opinion?"
        ),
        'type': 'opinion',
        'topic': 'education',
        'difficulty': 'intermediate',
    },
]


def get_random_question(topic: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Pick a random question, optionally restricted to one topic.

    Returns None when no question matches the topic.
    """
    pool = SAMPLE_QUESTIONS
    if topic:
        wanted = topic.strip().lower()
        pool = [question for question in SAMPLE_QUESTIONS if question['topic'] == wanted]
    if not pool:
        return None
    return dict(random.choice(pool))

import pytest


SAMPLE_ESSAY = (
    "Technology has transformed almost every part of modern life. Some people argue that it makes "
    "life more complicated. I believe that technology has made our lives easier because it saves "
    "time and improves communication.\n\n"
    "Firstly, technology saves a great deal of time in daily tasks. For example, online banking "
    "allows people to pay bills in minutes. Therefore, people have more free time for their families.\n\n"
    "Secondly, communication has improved significantly. Video calls let families stay in touch "
    "across continents. This shows that technology strengthens relationships.\n\n"
    "In conclusion, technology has made our lives easier because it saves time and improves "
    "communication. Governments should invest in digital skills for everyone."
)


@pytest.fixture
def sample_essay():
    """Four-paragraph opinion essay: intro, two body paragraphs, conclusion."""
    return SAMPLE_ESSAY

CONTINUE_STORY_PROMPT = """
You are a master storyteller. Your task is to seamlessly continue the story
provided by the user.
Do not add any introductory phrases, conversational filler,
or remarks like 'Here's the continuation:'.
Directly output the next part of the story, picking up exactly where the user's
text left off, and make sure the continuation flows naturally from it.
Try to write at least 5 or 6 paragraphs.
Make sure the story is extremely verbose and tacky like a backstory from a recipe blog.
""".strip()


EXPAND_STORY_PROMPT = """
You are a master storyteller. Your task is to expand the given story by adding
{paragraphs} or more paragraphs.
Do not add any introductory phrases or remarks.
Directly output the next part of the story, picking up exactly where the text left off.
Make the story extremely verbose and tacky like a backstory from a recipe blog,
with unnecessary details and tangents that seem to go nowhere.
You may introduce new characters, settings, or plot points,
but they should relate to the existing story in some way.
""".strip()


IMAGE_PROMPT = (
    "Create a nostalgic, homemade-looking food photography image for a recipe "
    'called "{title}". The image should illustrate this paragraph from the recipe '
    'story: "{paragraph}". Include rustic kitchenware, natural lighting, and '
    "vintage styling that evokes warm family memories of homemade food."
)


class ExpandStoryPrompt:
    def __init__(self, paragraphs: int = 10) -> None:
        self.paragraphs = paragraphs

    def __str__(self) -> str:
        return EXPAND_STORY_PROMPT.format(paragraphs=self.paragraphs)


def image_prompt(paragraph: str, title: str) -> str:
    return IMAGE_PROMPT.format(paragraph=paragraph, title=title)

from enum import Enum
import re
from typing import Any, Self


LINE_BREAKS = re.compile(r"\n+")
SENTENCE_BREAKS = re.compile(r"(?<=\.)\s{2,}")


class Source(Enum):
    cache = "cache"
    file = "file"
    llm = "llm"


class Recipe:
    def __init__(
        self,
        *,
        id: str,
        title: str,
        story: str = "",
        ingredients: list[str] | None = None,
        instructions: list[str] | None = None,
    ) -> None:
        self.id = id
        self.title = title
        self.story = story
        self.ingredients = [] if ingredients is None else ingredients
        self.instructions = [] if instructions is None else instructions

    def __repr__(self) -> str:
        return f"<Recipe(id={self.id}, title={self.title})>"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            story=data.get("story") or "",
            ingredients=list(data.get("ingredients") or []),
            instructions=list(data.get("instructions") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "story": self.story,
            "ingredients": self.ingredients,
            "instructions": self.instructions,
        }


class Continuation:
    def __init__(
        self,
        *,
        recipe_id: str,
        continuation: str,
        source: Source,
        next_segment_number: int,
    ) -> None:
        self.recipe_id = recipe_id
        self.continuation = continuation
        self.source = source
        self.next_segment_number = next_segment_number

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipeId": self.recipe_id,
            "continuation": self.continuation,
            "source": self.source.value,
            "nextSegmentNumber": self.next_segment_number,
        }


class Expansion:
    def __init__(self, *, recipe_id: str, expansion: str, story: str) -> None:
        self.recipe_id = recipe_id
        self.expansion = expansion
        self.story = story


def split_paragraphs(story: str) -> list[str]:
    """Paragraphs are lines, further split after a period and 2+ spaces.

    Indices into the result address image associations, so the rule must not
    change without invalidating cached images.
    """
    paragraphs: list[str] = []
    for line in LINE_BREAKS.split(story):
        if not line.strip():
            continue
        for part in SENTENCE_BREAKS.split(line):
            part = part.strip()
            if part:
                paragraphs.append(part)
    return paragraphs

class StoryError(Exception):
    """Base for everything the story protocol raises on purpose."""


class InvalidArgument(StoryError):
    pass


class NotFound(StoryError):
    pass


class GenerationFailed(StoryError):
    pass


class UpstreamUnavailable(StoryError):
    """Cache or generator could not be reached."""

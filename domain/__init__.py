"""Describes the Storied Recipes domain. Centres around the story of a recipe.

Why is this hard?

- The story is written by a large language model, one piece at a time.
  These tend to be served behind apis, slowly.
- Every piece is cached so the next visitor to the same place gets it free.
- One invariant: the story only grows at the end, in order.
- Images hang off paragraph indices, which are derived from the text and
  so are only as stable as the text before them.

Should be able to fake the model and the cache.
"""

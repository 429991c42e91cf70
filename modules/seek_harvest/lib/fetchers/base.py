from __future__ import annotations


class FetchError(RuntimeError):
    """The upstream answered, but with a shape we cannot interpret."""

from enum import Enum


class SourceCategory(str, Enum):
    """Which upstream family a cached payload came from."""

    CRIME = "crime"
    PLANNING = "planning"
    SPENDING = "spending"
    GENERIC = "generic"

    @classmethod
    def from_key(cls, key: str) -> "SourceCategory":
        """Guess a category from a cache key.

        Only used for snapshot rows written without an explicit category.
        First substring match wins, so mixed keys resolve to crime.
        """
        for category in (cls.CRIME, cls.PLANNING, cls.SPENDING):
            if category.value in key:
                return category
        return cls.GENERIC

    @classmethod
    def parse(cls, value: str | None, key: str = "") -> "SourceCategory":
        if value:
            try:
                return cls(value)
            except ValueError:
                pass
        return cls.from_key(key)

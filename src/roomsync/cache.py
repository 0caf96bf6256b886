"""How much room state the sync engine folds into its projections."""

from enum import IntEnum

from .errors import ValidationFailure


class CacheLevel(IntEnum):
    """
    NONE folds nothing, SOME folds room metadata, ALL also tracks membership.

    Values match the historical integer constants so configs may use -1/0/1.
    """

    NONE = -1
    SOME = 0
    ALL = 1

    @classmethod
    def coerce(cls, value) -> "CacheLevel":
        """Accept a CacheLevel, its integer value or its (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValidationFailure(f"Unknown cache level: {value!r}") from None
        if isinstance(value, bool):
            raise ValidationFailure(f"Unknown cache level: {value!r}")
        try:
            return cls(value)
        except ValueError:
            raise ValidationFailure(f"Unknown cache level: {value!r}") from None

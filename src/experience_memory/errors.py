"""Exception types raised by the experience engine."""


class ExperienceMemoryError(Exception):
    """Base class for every error this package raises on purpose."""


class InvalidInput(ExperienceMemoryError, ValueError):
    """A caller passed a value the engine cannot interpret.

    Raised for non-string text where text is required, unknown categories,
    out-of-range numeric arguments and malformed snapshots. Arbitrary (even
    empty) strings never raise: text paths are total.
    """


def require_text(name: str, value) -> str:
    if not isinstance(value, str):
        raise InvalidInput(
            f"{name} must be a string, got {type(value).__name__}"
        )
    return value


def optional_text(name: str, value) -> str:
    if value is None:
        return ""
    return require_text(name, value)

"""Human hints attached to configuration validation errors."""

from typing import Final, NamedTuple


class _Hint(NamedTuple):
    field: str | None
    error_type: str | None
    text: str


# First match wins; field rules compare the last segment of the location
_HINTS: Final[tuple[_Hint, ...]] = (
    _Hint("url", None, "Use an absolute http(s) URL such as https://example.org/iiif."),
    _Hint("urls", None, "Give a list of absolute http(s) URLs."),
    _Hint("path", None, "Give a folder relative to the project root, e.g. content."),
    _Hint("save", None, "`save` goes with a `manifests` or `collections` list."),
    _Hint("folder", None, "`folder` goes with a `manifests` or `collections` list."),
    _Hint("match", None, "Rewrite `match` is a Python regular expression."),
    _Hint(None, "missing", "Add this required option."),
    _Hint(None, "extra_forbidden", "Unknown option; check its spelling."),
    _Hint(None, "union_tag_invalid", "Store `type` is iiif-remote or iiif-json."),
    _Hint(None, "union_tag_not_found", "Every store needs a `type` option."),
    _Hint(None, "int_type", "Use a whole number."),
    _Hint(None, "bool_type", "Use true or false."),
    _Hint(None, "list_type", "Use a YAML list."),
    _Hint(None, "dict_type", "Use a YAML mapping."),
    _Hint(None, "greater_than_equal", "The value is below the allowed minimum."),
    _Hint(None, "less_than_equal", "The value is above the allowed maximum."),
    _Hint(None, "file_not_found", "Check the configuration file path."),
    _Hint(None, "yaml_parse_error", "Fix the YAML syntax; check indentation."),
)

DEFAULT_HINT: Final = "See the configuration reference for accepted values."


def get_error_hint(error_type: str, location: str | None = None) -> str:
    """Pick a hint for a validation error.

    Args:
        error_type: Pydantic error type, or a loader type such as
            ``yaml_parse_error``.
        location: Dotted location like ``stores.main.url``.

    Returns:
        The most specific matching hint.
    """
    field = location.rsplit(".", 1)[-1] if location else None
    for hint in _HINTS:
        if hint.field is not None and hint.field == field:
            return hint.text
        if hint.field is None and hint.error_type == error_type:
            return hint.text
    return DEFAULT_HINT


def format_validation_error(
    location: str,
    message: str,
    error_type: str,
    *,
    include_hint: bool = True,
) -> str:
    """Render one validation error for the terminal.

    Args:
        location: Dotted location, empty for file-level errors.
        message: Message from the validator.
        error_type: Error type used to pick the hint.
        include_hint: Append an indented hint line.

    Returns:
        One or two lines of text.
    """
    line = f"{location}: {message}" if location else message
    if not include_hint:
        return line
    return f"{line}\n    Hint: {get_error_hint(error_type, location)}"

"""Message templates and localized message catalogs.

``resolve_message`` fills ``{}`` placeholders left to right and never raises.
``MessageSource`` looks up localized texts by key, the way error handlers
turn validation codes into human-readable messages.
"""

import json
from collections.abc import Mapping
from pathlib import Path

PLACEHOLDER = "{}"


def resolve_message(template: str | None, *args: object) -> str | None:
    """Resolve a ``{}`` template with positional arguments.

    - Blank template and no arguments (or a ``None`` first argument) -> ``None``
    - Blank template with arguments -> the first argument becomes the template;
      a single argument is returned verbatim
    - No arguments -> the template unchanged, placeholders included
    - Extra arguments are ignored, extra placeholders stay literal

    Example:
        resolve_message("hello {} {}", "kind", "sir")  # "hello kind sir"
    """
    blank_template = template is None or not template.strip()
    empty_args = not args or args[0] is None

    if blank_template and empty_args:
        return None

    if blank_template:
        template = str(args[0])
        if len(args) == 1:
            return template
        args = args[1:]
    elif empty_args:
        return template

    return _bind_arguments(template, args)  # type: ignore[arg-type]


def _bind_arguments(template: str, args: tuple[object, ...]) -> str:
    result = template
    position = 0
    for arg in args:
        index = result.find(PLACEHOLDER, position)
        if index == -1:
            break
        value = str(arg)
        result = result[:index] + value + result[index + len(PLACEHOLDER) :]
        position = index + len(value)
    return result


def resolve_locale(accept_language: str | None, default: str) -> str:
    """Return the primary language subtag of the first Accept-Language entry."""
    if not accept_language:
        return default
    first = accept_language.split(",")[0].split(";")[0].strip()
    if not first or first == "*":
        return default
    return first.split("-")[0].lower()


class NoSuchMessageError(KeyError):
    """Raised when a key is missing from every catalog consulted."""

    def __init__(self, key: str, locale: str) -> None:
        self.key = key
        self.locale = locale
        super().__init__(f"No message found under code '{key}' for locale '{locale}'")


class MessageSource:
    """Localized message catalogs keyed by locale.

    Lookups try the requested locale first, then the default locale. Catalog
    values may contain ``{}`` placeholders filled by ``resolve_message``.
    """

    def __init__(
        self,
        catalogs: Mapping[str, Mapping[str, str]] | None = None,
        default_locale: str = "en",
    ) -> None:
        self.default_locale = default_locale
        self._catalogs = {
            locale.lower(): dict(messages) for locale, messages in (catalogs or {}).items()
        }

    @classmethod
    def from_directory(cls, directory: str | Path, default_locale: str = "en") -> "MessageSource":
        """Load ``messages_<locale>.json`` files; ``messages.json`` backs the default locale."""
        catalogs: dict[str, dict[str, str]] = {}
        for path in sorted(Path(directory).glob("messages*.json")):
            stem = path.stem
            locale = stem.partition("_")[2] or default_locale
            with path.open(encoding="utf-8") as fh:
                catalogs.setdefault(locale.lower(), {}).update(json.load(fh))
        return cls(catalogs, default_locale)

    def get_message(self, key: str, locale: str | None = None, *args: object) -> str:
        locale = (locale or self.default_locale).lower()
        for candidate in (locale, self.default_locale.lower()):
            catalog = self._catalogs.get(candidate)
            if catalog is not None and key in catalog:
                return resolve_message(catalog[key], *args) or catalog[key]
        raise NoSuchMessageError(key, locale)

    def resolve(self, key: str, locale: str | None = None) -> str:
        """Return the catalog text for ``key``, or ``key`` itself when none exists."""
        try:
            return self.get_message(key, locale)
        except NoSuchMessageError:
            return key

    def resolve_first(self, keys: list[str], default: str, locale: str | None = None) -> str:
        for key in keys:
            try:
                return self.get_message(key, locale)
            except NoSuchMessageError:
                continue
        return self.resolve(default, locale)

"""
core/messages.py -- Locale-aware message lookup.

The auth core raises (kind, phrase, args); this catalog is the only place a
phrase becomes user-visible text. Phrases are the English source strings
themselves, so a missing translation degrades to readable English rather than
a bare key.

Catalog files live in core/locales/<locale>.json as flat {phrase: text} maps.
Placeholders use the {{name}} form.

Usage:
    catalog = MessageCatalog(default_locale="en")
    catalog.resolve("Email {{email}} not found", "es", {"email": "a@x.com"})
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

logger = logging.getLogger("orgwarden.messages")

_LOCALES_DIR = Path(__file__).parent / "locales"
_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class MessageResolver(Protocol):
    def resolve(self, phrase: str, locale: Optional[str] = None, args: Optional[Mapping[str, Any]] = None) -> str: ...


class MessageCatalog:
    """JSON-backed MessageResolver with default-locale fallback."""

    def __init__(self, default_locale: str = "en", locales_dir: Path = _LOCALES_DIR) -> None:
        self.default_locale = default_locale
        self._catalogs: dict[str, dict[str, str]] = {}
        for path in sorted(locales_dir.glob("*.json")):
            self._catalogs[path.stem] = json.loads(path.read_text(encoding="utf-8"))
        logger.debug("Loaded message catalogs: %s", ", ".join(self._catalogs) or "none")

    @property
    def locales(self) -> list[str]:
        return list(self._catalogs)

    def normalize_locale(self, locale: Optional[str]) -> str:
        """Map "es-MX" or "ES" onto a loaded catalog, else the default locale."""
        if not locale:
            return self.default_locale
        candidate = locale.strip().lower().replace("_", "-")
        if candidate in self._catalogs:
            return candidate
        base = candidate.split("-", 1)[0]
        if base in self._catalogs:
            return base
        return self.default_locale

    def resolve(self, phrase: str, locale: Optional[str] = None, args: Optional[Mapping[str, Any]] = None) -> str:
        """Return phrase translated into locale with {{placeholders}} filled in.

        Lookup order: requested locale, default locale, the phrase itself.
        Unknown placeholders are left untouched.
        """
        locale = self.normalize_locale(locale)
        template = self._catalogs.get(locale, {}).get(phrase)
        if template is None:
            template = self._catalogs.get(self.default_locale, {}).get(phrase, phrase)
        if not args:
            return template
        return _PLACEHOLDER.sub(lambda m: str(args.get(m.group(1), m.group(0))), template)

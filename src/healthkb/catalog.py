"""URL catalog loading.

The catalog is a YAML file with a ``sources`` list. Each entry is either a
URL string or a mapping with a ``url`` key::

    sources:
      - https://www.who.int/news-room/fact-sheets/detail/obesity-and-overweight
      - url: https://www.cdc.gov/obesity/adult-obesity-facts/

Order is preserved and duplicates are kept: ingestion deduplicates against
the store, not against the list.
"""

from __future__ import annotations

import urllib.parse
from importlib import resources
from pathlib import Path

import yaml

from healthkb.config import ConfigError


def default_catalog_text() -> str:
    """Return the YAML text of the catalog shipped with the package."""
    return resources.files("healthkb").joinpath("data/sources.yaml").read_text(encoding="utf-8")


def parse_catalog(text: str, origin: str = "<catalog>") -> list[str]:
    """Parse catalog YAML into an ordered list of URLs.

    Raises:
        ConfigError: If the YAML is malformed or an entry is not an
            absolute http(s) URL.
    """
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in catalog '{origin}': {exc}") from exc

    entries = data.get("sources") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ConfigError(f"Catalog '{origin}' must contain a 'sources' list.")

    urls: list[str] = []
    for n, entry in enumerate(entries, start=1):
        url = entry.get("url") if isinstance(entry, dict) else entry
        if not isinstance(url, str):
            raise ConfigError(f"Catalog '{origin}' entry {n} has no URL.")
        url = url.strip()
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(
                f"Catalog '{origin}' entry {n} is not an absolute http(s) URL: '{url}'"
            )
        urls.append(url)
    return urls


def load_catalog(path: Path | str | None = None) -> list[str]:
    """Load the catalog at *path*, or the packaged default when *path* is None."""
    if path is None:
        return parse_catalog(default_catalog_text(), origin="healthkb/data/sources.yaml")

    catalog_path = Path(path)
    if not catalog_path.is_file():
        raise ConfigError(f"Catalog file not found: '{catalog_path}'")
    return parse_catalog(catalog_path.read_text(encoding="utf-8"), origin=str(catalog_path))

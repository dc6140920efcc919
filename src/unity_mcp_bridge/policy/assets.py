"""Asset filter parsing and matching.

Parses Unity-style search filters such as ``t:Material name:Hero "Main Menu"``
and narrows a listed set of assets the way ``AssetDatabase.FindAssets`` would,
so ``unity.asset.find`` can be answered from ``unity.asset.list`` results.
"""

from __future__ import annotations

import re

from dataclasses import dataclass, field
from typing import Any

_KEY_VALUE_RE = re.compile(r"^([A-Za-z]+)\s*:\s*(.*)$", re.DOTALL)


@dataclass
class AssetFilter:
    raw: str = ""
    asset_type: str | None = None
    name: str | None = None
    guid: str | None = None
    path: str | None = None
    tokens: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "raw": self.raw,
            "assetType": self.asset_type,
            "name": self.name,
            "guid": self.guid,
            "path": self.path,
            "tokens": list(self.tokens),
        }


def tokenize_filter_string(filter_text: Any) -> list[str]:
    """Split on whitespace; single or double quotes group words and are dropped."""
    if not isinstance(filter_text, str):
        return []

    tokens: list[str] = []
    current = ""
    quote: str | None = None

    for char in filter_text.strip():
        if quote:
            if char == quote:
                quote = None
            else:
                current += char
            continue

        if char in ("'", '"'):
            quote = char
            continue

        if char.isspace():
            if current:
                tokens.append(current)
                current = ""
            continue

        current += char

    if current:
        tokens.append(current)
    return tokens


def parse_asset_filter(filter_text: Any) -> AssetFilter:
    """Parse a filter into typed fields plus free-text tokens.

    ``t:``, ``name:``, ``guid:`` and ``path:`` are recognized (first occurrence
    wins). ``t: Material`` is accepted: an empty value takes the next token.
    """
    tokens = tokenize_filter_string(filter_text)
    parsed = AssetFilter(raw=filter_text if isinstance(filter_text, str) else "")

    i = 0
    while i < len(tokens):
        token = tokens[i]
        i += 1
        match = _KEY_VALUE_RE.match(token)
        if not match:
            parsed.tokens.append(token)
            continue

        key = match.group(1).lower()
        value = match.group(2)
        if not value.strip() and i < len(tokens):
            value = tokens[i]
            i += 1

        value = value.strip()
        if not value:
            continue

        if key == "t" and not parsed.asset_type:
            parsed.asset_type = value
        elif key == "name" and not parsed.name:
            parsed.name = value
        elif key == "guid" and not parsed.guid:
            parsed.guid = value
        elif key == "path" and not parsed.path:
            parsed.path = value
        else:
            parsed.tokens.append(token)

    return parsed


def normalize_search_in_folders(search_in_folders: Any) -> list[str]:
    if isinstance(search_in_folders, list):
        return [value.strip() for value in search_in_folders if isinstance(value, str) and value.strip()]
    if isinstance(search_in_folders, str) and search_in_folders.strip():
        return [search_in_folders.strip()]
    return []


def filter_asset_candidates(assets: Any, parsed_filter: AssetFilter | None) -> list[dict[str, Any]]:
    """Keep assets whose name contains the name needle and whose name+path contain every free-text token."""
    name_needle = (parsed_filter.name or "").strip().lower() if parsed_filter else ""
    tokens = [str(token).strip().lower() for token in (parsed_filter.tokens if parsed_filter else [])]
    tokens = [token for token in tokens if token]

    result: list[dict[str, Any]] = []
    for asset in assets if isinstance(assets, list) else []:
        if not isinstance(asset, dict):
            continue

        asset_name = asset.get("name") if isinstance(asset.get("name"), str) else ""
        asset_path = asset.get("path") if isinstance(asset.get("path"), str) else ""
        haystack = f"{asset_name} {asset_path}".lower()

        if name_needle and name_needle not in asset_name.lower():
            continue
        if all(token in haystack for token in tokens):
            result.append(asset)

    return result

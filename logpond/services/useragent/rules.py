"""User-agent ruleset loading.

The ruleset is a uap-core ``regexes.yaml`` document. It is decoded with PyYAML
and compiled into ua-parser matchers, one ordered list per facet category.
"""
from __future__ import annotations

import logging
import re
from importlib import resources
from pathlib import Path
from typing import TYPE_CHECKING

import yaml
from ua_parser.loaders import load_data

from logpond.errors import ResourceLoadFailure

if TYPE_CHECKING:
    from ua_parser.core import Matchers


logger = logging.getLogger(__name__)

RULE_LISTS = ("user_agent_parsers", "os_parsers", "device_parsers")


def parse_ruleset(document: object) -> Matchers:
    """Compile an already decoded YAML document. Missing lists are empty."""
    if not isinstance(document, dict):
        raise ResourceLoadFailure("User-agent ruleset must be a mapping")

    data: dict[str, list[dict]] = {}
    for list_key in RULE_LISTS:
        entries = document.get(list_key) or []
        if not isinstance(entries, list):
            raise ResourceLoadFailure(f"'{list_key}' must be a list")
        for position, entry in enumerate(entries):
            if not isinstance(entry, dict) or "regex" not in entry:
                raise ResourceLoadFailure(f"{list_key} rule #{position} has no regex")
        data[list_key] = entries

    try:
        return load_data(tuple(data[list_key] for list_key in RULE_LISTS))
    except re.error as e:
        raise ResourceLoadFailure(f"User-agent rule is not a valid pattern: {e}") from e


def default_rules_text() -> str:
    return resources.files("logpond").joinpath("resources/regexes.yaml").read_text(encoding="utf-8")


def load_ruleset(path: Path | None = None) -> Matchers:
    """Load and compile a ruleset file, or the bundled one when ``path`` is None."""
    try:
        text = path.read_text(encoding="utf-8") if path else default_rules_text()
        document = yaml.safe_load(text)
    except (OSError, yaml.YAMLError) as e:
        raise ResourceLoadFailure(f"Cannot load user-agent ruleset {path or '(bundled)'}: {e}") from e

    browser, os, device = ruleset = parse_ruleset(document)
    logger.info(
        "Loaded user-agent ruleset %s (%d browser, %d os, %d device rules)",
        path or "(bundled)",
        len(browser),
        len(os),
        len(device),
    )
    return ruleset

"""Tag extractors: compute one tag value from a successful pattern match.

An extractor is either a :class:`GroupExtractor`, which reads the named capture
group equal to the tag key, or a :class:`CustomExtractor` wrapping a function
supplied by configuration.
"""
from __future__ import annotations

import importlib
import re
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Union

from metrics_reporter.core.errors import MappingConfigError

ExtractorFn = Callable[["re.Match[str]"], Optional[str]]


@dataclass(frozen=True)
class GroupExtractor:
    tag_key: str

    def extract(self, match: "re.Match[str]") -> Optional[str]:
        # IndexError when the pattern has no group of this name
        return match.group(self.tag_key)


@dataclass(frozen=True)
class CustomExtractor:
    fn: ExtractorFn

    def extract(self, match: "re.Match[str]") -> Optional[str]:
        return self.fn(match)


TagExtractor = Union[GroupExtractor, CustomExtractor]

# measurement name -> tag key -> explicit extractor (None = read the group named like the tag)
TagTable = Mapping[str, Mapping[str, Optional[Union[TagExtractor, ExtractorFn]]]]


def group(name: str) -> ExtractorFn:
    """Return a function reading capture group ``name``; handy for aliased groups."""

    def _read(match: "re.Match[str]") -> Optional[str]:
        return match.group(name)

    return _read


def to_extractor(tag_key: str, explicit: Optional[Union[TagExtractor, ExtractorFn]]) -> TagExtractor:
    if explicit is None:
        return GroupExtractor(tag_key)
    if isinstance(explicit, (GroupExtractor, CustomExtractor)):
        return explicit
    if callable(explicit):
        return CustomExtractor(explicit)
    raise MappingConfigError(
        f"Tag extractor for '{tag_key}' must be callable, got {type(explicit).__name__}"
    )


def normalize_tag_table(table: Optional[TagTable]) -> Dict[str, Dict[str, TagExtractor]]:
    """Freeze a user-supplied tag table into ``{measurement: {tag: extractor}}``."""
    if not table:
        return {}
    return {
        measurement: {key: to_extractor(key, explicit) for key, explicit in (tags or {}).items()}
        for measurement, tags in table.items()
    }


def import_extractor(reference: str) -> ExtractorFn:
    """Resolve a ``package.module:function`` reference from configuration."""
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise MappingConfigError(
            f"Invalid extractor reference '{reference}', expected 'package.module:function'"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise MappingConfigError(f"Could not import extractor module '{module_name}': {exc}") from exc

    target = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise MappingConfigError(f"Extractor '{reference}' not found") from exc

    if not callable(target):
        raise MappingConfigError(f"Extractor '{reference}' is not callable")
    return target


def tag_table_from_config(raw: Optional[Mapping[str, Mapping[str, Optional[str]]]]) -> Dict[str, Dict[str, TagExtractor]]:
    """Build a tag table from YAML, where values are null or extractor references.

    A value of the form ``group:<name>`` reads capture group ``<name>``.
    """
    table: Dict[str, Dict[str, TagExtractor]] = {}
    for measurement, tags in (raw or {}).items():
        extractors: Dict[str, TagExtractor] = {}
        for tag_key, reference in (tags or {}).items():
            if reference is None:
                extractors[tag_key] = GroupExtractor(tag_key)
            elif isinstance(reference, str) and reference.startswith("group:"):
                extractors[tag_key] = CustomExtractor(group(reference[len("group:"):]))
            elif isinstance(reference, str):
                extractors[tag_key] = CustomExtractor(import_extractor(reference))
            else:
                raise MappingConfigError(
                    f"Tag '{tag_key}' of measurement '{measurement}' must reference an extractor",
                    measurement=measurement,
                )
        table[measurement] = extractors
    return table

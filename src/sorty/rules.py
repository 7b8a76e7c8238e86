"""
Classification rules and the classifier that applies them.

This module is responsible for:
- Representing rules as plain ordered data (ClassificationRule)
- Validating raw rule definitions at load time (ConfigError on bad input)
- Classifying files: first matching rule wins, no match goes to "unsorted"
- Matching keyword rules against many names efficiently, either with a
  length-bucket scan or an Aho-Corasick automaton (pyahocorasick)

A rule uses exactly one syntax:
- extensions: {"target": "Images", "extensions": ["jpg", "png"]}
- pattern:    {"target": "Screenshots", "pattern": "Screenshot*"}
- keywords:   {"target": "Invoices", "keywords": ["invoice", "receipt"]}
"""

import fnmatch
import logging
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Literal,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

import ahocorasick

from .errors import ConfigError
from .types import FileEntry

logger = logging.getLogger(__name__)

# Category for files that match no rule
UNSORTED = "unsorted"

# Matcher type literal for keyword rules
MatcherType = Literal["bucket", "aho"]
MATCHERS = ("bucket", "aho")

SYNTAX_KEYS = ("extensions", "pattern", "keywords")
RULE_KEYS = frozenset(("target",) + SYNTAX_KEYS)


@dataclass(frozen=True)
class ClassificationRule:
    """
    A single type -> folder rule.

    Exactly one of extensions, pattern or keywords is set. Extensions are
    stored lower-cased without a leading dot and may be compound ("tar.gz").

    Attributes:
        target: Category folder, relative to the scanned root
        extensions: File extensions this rule claims
        pattern: Case-insensitive glob matched against the file name
        keywords: Case-insensitive substrings matched against the file name
    """
    target: str
    extensions: FrozenSet[str] = frozenset()
    pattern: Optional[str] = None
    keywords: Tuple[str, ...] = ()

    @property
    def kind(self) -> str:
        if self.extensions:
            return "extensions"
        if self.pattern is not None:
            return "pattern"
        return "keywords"


def _config_error(index: int, message: str) -> ConfigError:
    return ConfigError(f"Rule #{index + 1}: {message}")


def normalize_folder(value: Any, label: str = "folder") -> str:
    """
    Validate a category folder and return it normalized ("a/./b" -> "a/b").

    Category folders are relative to the scanned root and must stay inside
    it: absolute paths, drive letters, ".." and "." are rejected.

    Raises:
        ConfigError: If the folder is invalid
    """
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{label} must be a non-empty string")

    cleaned = value.strip().replace("\\", "/")
    path = PurePosixPath(cleaned)
    if (
        path.is_absolute()
        or ".." in path.parts
        or not path.parts
        or re.match(r"^[A-Za-z]:", cleaned)
    ):
        raise ConfigError(f"{label} must be a folder inside the root: {value!r}")

    return str(path)


def _validate_target(index: int, target: Any) -> str:
    try:
        return normalize_folder(target, "'target'")
    except ConfigError as e:
        raise _config_error(index, str(e)) from e


def _validate_strings(index: int, key: str, values: Any) -> List[str]:
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple, set, frozenset)):
        raise _config_error(index, f"'{key}' must be a list of strings")

    cleaned: List[str] = []
    for value in values:
        if not isinstance(value, str) or not value.strip():
            raise _config_error(index, f"'{key}' entries must be non-empty strings")
        cleaned.append(value.strip().lower())

    if not cleaned:
        raise _config_error(index, f"'{key}' must not be empty")
    return cleaned


def _normalize_extensions(index: int, values: Any) -> FrozenSet[str]:
    extensions: Set[str] = set()
    for value in _validate_strings(index, "extensions", values):
        ext = value.lstrip(".")
        if not ext or "/" in ext or "\\" in ext or any(c in ext for c in "*?["):
            raise _config_error(index, f"invalid extension {value!r}")
        extensions.add(ext)
    return frozenset(extensions)


def _validate_pattern(index: int, pattern: Any) -> str:
    if not isinstance(pattern, str) or not pattern.strip():
        raise _config_error(index, "'pattern' must be a non-empty string")
    if "/" in pattern or "\\" in pattern:
        raise _config_error(index, f"pattern matches file names only: {pattern!r}")
    try:
        re.compile(fnmatch.translate(pattern.lower()))
    except re.error as e:
        raise _config_error(index, f"cannot parse pattern {pattern!r}: {e}") from e
    return pattern.strip()


def parse_rule(index: int, raw: Any) -> ClassificationRule:
    """
    Build one ClassificationRule from its raw mapping form.

    Raises:
        ConfigError: If the mapping is not a valid rule
    """
    if isinstance(raw, ClassificationRule):
        return raw

    if not isinstance(raw, Mapping):
        raise _config_error(index, f"expected a mapping, got {type(raw).__name__}")

    unknown = set(raw) - RULE_KEYS
    if unknown:
        raise _config_error(index, f"unknown keys: {sorted(unknown)}")

    if "target" not in raw:
        raise _config_error(index, "missing 'target'")
    target = _validate_target(index, raw["target"])

    syntaxes = [key for key in SYNTAX_KEYS if key in raw]
    if not syntaxes:
        raise _config_error(
            index, f"needs one of {', '.join(SYNTAX_KEYS)}"
        )
    if len(syntaxes) > 1:
        raise _config_error(
            index, f"conflicting syntax, use only one of: {', '.join(syntaxes)}"
        )

    syntax = syntaxes[0]
    if syntax == "extensions":
        return ClassificationRule(
            target=target,
            extensions=_normalize_extensions(index, raw["extensions"])
        )
    if syntax == "pattern":
        return ClassificationRule(
            target=target,
            pattern=_validate_pattern(index, raw["pattern"])
        )
    return ClassificationRule(
        target=target,
        keywords=tuple(_validate_strings(index, "keywords", raw["keywords"]))
    )


def load_rules(raw: Any) -> Tuple[ClassificationRule, ...]:
    """
    Validate and build an ordered rule set.

    Accepts either a list of rule mappings (or ClassificationRule objects),
    or the shorthand mapping {"Images": ["jpg", "png"], ...} where every value
    is an extension list. Duplicate targets across rules are allowed.

    Args:
        raw: The already-parsed rule definitions

    Returns:
        Tuple of ClassificationRule in declaration order

    Raises:
        ConfigError: If any rule is invalid
    """
    if raw is None:
        return ()

    if isinstance(raw, Mapping):
        raw = [
            {"target": target, "extensions": extensions}
            for target, extensions in raw.items()
        ]

    if isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
        raise ConfigError(f"Rules must be a list or a mapping, got {type(raw).__name__}")

    rules = tuple(parse_rule(i, item) for i, item in enumerate(raw))
    logger.debug(f"Loaded {len(rules)} classification rules")
    return rules


def rule_matches(rule: ClassificationRule, name: str) -> bool:
    """Check whether a single rule matches a file name."""
    name_lower = name.lower()
    if rule.extensions:
        return any(name_lower.endswith("." + ext) for ext in rule.extensions)
    if rule.pattern is not None:
        return fnmatch.fnmatchcase(name_lower, rule.pattern.lower())
    return any(keyword in name_lower for keyword in rule.keywords)


def classify(
    entry: FileEntry,
    rules: Sequence[ClassificationRule],
    unsorted_folder: str = UNSORTED
) -> str:
    """
    Map a file to its category folder.

    Rules are evaluated in declaration order and the first match wins. A
    file matching no rule goes to the unsorted category; this never fails.

    Args:
        entry: The file to classify
        rules: Ordered rule set
        unsorted_folder: Category used when no rule matches

    Returns:
        The target category folder
    """
    for rule in rules:
        if rule_matches(rule, entry.name):
            return rule.target
    return unsorted_folder


class Classifier:
    """
    Compiled rule set for classifying many files.

    Globs are compiled once, and keyword rules are matched with all keywords
    at once using the chosen matcher:
    - "bucket": keywords sorted by length; only keywords no longer than the
      name are checked
    - "aho": Aho-Corasick automaton over every keyword (pyahocorasick)

    Results are identical to classify() for either matcher.
    """

    def __init__(
        self,
        rules: Sequence[ClassificationRule],
        matcher: MatcherType = "bucket",
        unsorted_folder: str = UNSORTED
    ):
        """
        Initialize the classifier.

        Args:
            rules: Ordered rule set (from load_rules)
            matcher: Keyword matching algorithm ("bucket" or "aho")
            unsorted_folder: Category used when no rule matches

        Raises:
            ConfigError: If the matcher name is unknown
        """
        if matcher not in MATCHERS:
            raise ConfigError(f"Unknown matcher {matcher!r}, expected one of {MATCHERS}")

        self.rules = tuple(rules)
        self.matcher = matcher
        self.unsorted_folder = unsorted_folder

        self._globs: Dict[int, re.Pattern] = {
            i: re.compile(fnmatch.translate(rule.pattern.lower()))
            for i, rule in enumerate(self.rules)
            if rule.pattern is not None
        }

        # (keyword, rule index) pairs sorted by keyword length
        self._keywords: List[Tuple[str, int]] = sorted(
            (
                (keyword, i)
                for i, rule in enumerate(self.rules)
                for keyword in rule.keywords
            ),
            key=lambda pair: len(pair[0])
        )

        self._automaton = None
        if matcher == "aho" and self._keywords:
            self._automaton = ahocorasick.Automaton()
            keyword_rules: Dict[str, Set[int]] = {}
            for keyword, i in self._keywords:
                keyword_rules.setdefault(keyword, set()).add(i)
            for keyword, indices in keyword_rules.items():
                self._automaton.add_word(keyword, frozenset(indices))
            self._automaton.make_automaton()

        logger.debug(
            f"Classifier ready: {len(self.rules)} rules, "
            f"{len(self._keywords)} keywords, {matcher} matcher"
        )

    def _keyword_hits(self, name_lower: str) -> Set[int]:
        """Return indices of keyword rules with a keyword inside the name."""
        if not self._keywords:
            return set()

        hits: Set[int] = set()
        if self._automaton is not None:
            for _, indices in self._automaton.iter(name_lower):
                hits.update(indices)
            return hits

        name_len = len(name_lower)
        for keyword, i in self._keywords:
            if len(keyword) > name_len:
                break
            if i not in hits and keyword in name_lower:
                hits.add(i)
        return hits

    def classify(self, entry: FileEntry) -> str:
        """Map a file to its category folder (first match wins)."""
        name_lower = entry.name.lower()
        keyword_hits = self._keyword_hits(name_lower)

        for i, rule in enumerate(self.rules):
            if rule.extensions:
                matched = any(name_lower.endswith("." + ext) for ext in rule.extensions)
            elif rule.pattern is not None:
                matched = self._globs[i].match(name_lower) is not None
            else:
                matched = i in keyword_hits

            if matched:
                return rule.target

        return self.unsorted_folder

    def classify_all(self, entries: Iterable[FileEntry]) -> List[Tuple[FileEntry, str]]:
        """Classify many files, preserving their order."""
        return [(entry, self.classify(entry)) for entry in entries]


DEFAULT_RULES: Tuple[ClassificationRule, ...] = load_rules([
    {"target": "Images", "extensions": ["jpg", "jpeg", "png", "gif", "bmp", "tiff", "webp", "heic"]},
    {"target": "Documents", "extensions": ["pdf", "doc", "docx", "odt", "rtf"]},
    {"target": "Spreadsheets", "extensions": ["xls", "xlsx", "ods", "csv"]},
    {"target": "Presentations", "extensions": ["ppt", "pptx", "odp"]},
    {"target": "Text", "extensions": ["txt", "md"]},
    {"target": "Audio", "extensions": ["mp3", "wav", "flac", "ogg", "m4a"]},
    {"target": "Video", "extensions": ["mp4", "mkv", "avi", "mov", "webm"]},
    {"target": "Archives", "extensions": ["zip", "rar", "7z", "tar", "gz", "tgz", "bz2", "xz"]},
    {"target": "Code", "extensions": ["py", "js", "ts", "html", "css", "json", "sh"]},
    {"target": "Installers", "extensions": ["exe", "msi", "dmg", "pkg", "deb", "rpm", "apk"]},
])

"""
Markdown helpers: file classification, titles, tags and wiki-links.
"""

import logging
import posixpath
import re
from typing import Dict, Iterable, List, Optional

from ..models.sources import FILE_CANVAS, FILE_CANVAS2DOCUMENT, FILE_MARKDOWN, FILE_TEXT


KNOWN_EXTENSIONS = (".md", ".canvas", ".txt")

H1_PATTERN = re.compile(r"^# (.+)$", re.MULTILINE)
INLINE_TAG_PATTERN = re.compile(r"(?<![\w#/&\[])#([a-zA-Z0-9_\-]+)")
FRONT_MATTER_PATTERN = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)
YAML_TAGS_PATTERN = re.compile(r"tags:\s*\[(.*?)\]")
WIKI_LINK_PATTERN = re.compile(r"\[\[([^\]]+)\]\]")


def classify_file(name: str, content: str = "") -> Optional[str]:
    """
    Decide how a file should be parsed from its name and content.

    Args:
        name: File name or path
        content: File text, used to recognize Canvas2Document exports

    Returns:
        'markdown', 'canvas2document', 'canvas', 'text', or None for
        unsupported files
    """
    lower = name.lower()
    if lower.endswith(".md"):
        if "# Canvas" in content and "# _" in content:
            return FILE_CANVAS2DOCUMENT
        return FILE_MARKDOWN
    if lower.endswith(".canvas"):
        return FILE_CANVAS
    if lower.endswith(".txt"):
        return FILE_TEXT
    return None


def is_supported_file(name: str) -> bool:
    return name.lower().endswith(KNOWN_EXTENSIONS)


def strip_extension(name: str) -> str:
    """Drop a known note extension from a file name."""
    for extension in KNOWN_EXTENSIONS:
        if name.lower().endswith(extension):
            return name[: -len(extension)]
    return name


def extract_title(content: str, file_name: str) -> str:
    """
    Title of a markdown note: its first level-one heading, else the file name
    without extension.
    """
    match = H1_PATTERN.search(content or "")
    if match and match.group(1).strip():
        return match.group(1).strip()
    return strip_extension(posixpath.basename(file_name))


def extract_tags(content: str) -> List[str]:
    """
    Collect inline '#tag' tokens and YAML front-matter 'tags: [a, b]' entries.

    Returns:
        Tags in first-seen order without duplicates
    """
    tags: Dict[str, None] = {}
    if not content:
        return []

    for match in INLINE_TAG_PATTERN.finditer(content):
        tags.setdefault(match.group(1), None)

    front_matter = FRONT_MATTER_PATTERN.search(content)
    if front_matter:
        tags_match = YAML_TAGS_PATTERN.search(front_matter.group(1))
        if tags_match:
            for raw in tags_match.group(1).split(","):
                tag = raw.strip().strip("'\"")
                if tag:
                    tags.setdefault(tag, None)

    return list(tags)


def normalize_link_target(raw_target: str) -> Optional[str]:
    """
    Turn the inside of a wiki-link into a batch path.

    '[[Other Note|label]]' and '[[Other Note#Heading]]' both become
    '/Other Note.md'. Same-file links ('[[#Heading]]') yield None.
    """
    target = raw_target.split("|", 1)[0]
    target = target.split("#", 1)[0].strip()
    if not target:
        return None
    if not target.lower().endswith(KNOWN_EXTENSIONS):
        target += ".md"
    if not target.startswith("/"):
        target = "/" + target
    return target


def extract_wiki_links(content: str) -> List[str]:
    """
    Normalized targets of every wiki-link in the text, in order, without duplicates.
    """
    targets: Dict[str, None] = {}
    for match in WIKI_LINK_PATTERN.finditer(content or ""):
        target = normalize_link_target(match.group(1))
        if target:
            targets.setdefault(target, None)
    return list(targets)


class PathResolver:
    """
    Resolves normalized wiki-link targets against the paths of one batch.

    A target matches a path exactly, or else the single path in the batch
    with the same file name. Ambiguous file names do not resolve.
    """

    def __init__(self, paths: Iterable[str]):
        self.paths = set()
        self._by_name: Dict[str, List[str]] = {}
        for path in paths:
            self.add(path)

    def add(self, path: str):
        if path in self.paths:
            return
        self.paths.add(path)
        name = posixpath.basename(path).lower()
        self._by_name.setdefault(name, []).append(path)

    def resolve(self, target: str) -> Optional[str]:
        if target in self.paths:
            return target
        candidates = self._by_name.get(posixpath.basename(target).lower(), [])
        if len(candidates) == 1:
            return candidates[0]
        if len(candidates) > 1:
            logging.warning(f"Ambiguous wiki-link target {target}: {len(candidates)} files share its name")
        return None

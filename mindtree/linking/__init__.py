"""
Batch tools that rebuild the link table from stored nodes.

Run them as scripts: python -m mindtree.linking.explicit or
python -m mindtree.linking.generic.
"""

from .heuristics import NodeLookup, dedupe_node_links, tag_strength, titles_similar

__all__ = [
    "NodeLookup",
    "dedupe_node_links",
    "tag_strength",
    "titles_similar"
]

"""Default site-search tools.

The widget ships two tools, ``retrieve_indexes`` and ``search``, that
let the model look up the site's content.  They talk to a
:class:`SearchBackend`; plug in your own search service by subclassing
it.  Results are returned to the model as YAML.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import yaml

from chatbubble.tools import Tool

logger = logging.getLogger(__name__)

DEFAULT_INDEX = "default"


class SearchBackend(ABC):
    @abstractmethod
    def indexes(self) -> list[str]:
        ...

    @abstractmethod
    def search(self, query: str, index: str = DEFAULT_INDEX) -> list[dict]:
        """Return matching documents as ``{"id": ..., <field>: ...}`` dicts."""


@dataclass
class SearchIndex:
    name: str
    fields: list[str] = field(default_factory=lambda: ["title", "content"])
    documents: list[dict] = field(default_factory=list)


class InMemorySearchBackend(SearchBackend):
    """Case-insensitive substring search over in-memory documents.

    Only the index's declared ``fields`` are searched and returned,
    alongside each document's ``id``.
    """

    def __init__(self, indexes: list[SearchIndex] | None = None):
        self._indexes = {i.name: i for i in indexes or []}

    def add_index(self, index: SearchIndex) -> None:
        self._indexes[index.name] = index

    def indexes(self) -> list[str]:
        return list(self._indexes)

    def search(self, query: str, index: str = DEFAULT_INDEX) -> list[dict]:
        if index not in self._indexes:
            raise KeyError(f"Search index [{index}] not found")
        target = self._indexes[index]
        needle = query.lower()
        results = []
        for doc in target.documents:
            values = {f: doc[f] for f in target.fields if doc.get(f) is not None}
            if any(needle in str(v).lower() for v in values.values()):
                results.append({"id": doc.get("id"), **values})
        logger.debug(f"Search {query!r} in {index}: {len(results)} results")
        return results


def retrieve_indexes_tool(backend: SearchBackend) -> Tool:
    def retrieve_indexes() -> str:
        return yaml.safe_dump(backend.indexes(), sort_keys=False)

    return Tool.from_function(
        retrieve_indexes,
        description="Retrieves the available search indexes.",
    )


def search_tool(backend: SearchBackend) -> Tool:
    def search(query: str, index: str = DEFAULT_INDEX) -> str:
        """Search the site's index.

        Args:
            query: Search query like you would enter into a search engine.
            index: Index to search in, defaults to "default".
        """
        return yaml.safe_dump(backend.search(query, index or DEFAULT_INDEX), sort_keys=False)

    return Tool.from_function(
        search,
        description=(
            "Useful for searching in publicly available information for the "
            "website. You can specify an index to search in in order to "
            "improve results."
        ),
    )


def default_tools(backend: SearchBackend) -> list:
    """Factories for the bundled tools, suitable for ``ChatSettings.tools``."""
    return [
        lambda: retrieve_indexes_tool(backend),
        lambda: search_tool(backend),
    ]

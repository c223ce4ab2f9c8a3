"""
Document Index - Multi-field forward index for fast/fuzzy search.

Every token of every indexable field is indexed under all of its prefixes
("forward" tokenization), so typing "para" finds "Paracetamol 500" without
scanning the snapshot. Per field we keep:
- postings: prefix -> {record id: earliest token position}
- terms: record id -> prefixes it was indexed under (for removal)

The index is a throwaway projection of a record snapshot. It is rebuilt
from scratch on every snapshot change, so re-adding an id simply replaces
its previous postings.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from .models import FieldHits
from .normalize import to_text

logger = logging.getLogger(__name__)

# Unicode-aware word tokens, excluding underscores.
_WORD_RE = re.compile(r"[^\W_]+", flags=re.UNICODE)

DEFAULT_LIMIT = 100


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens in order of appearance."""
    if not text:
        return []
    return _WORD_RE.findall(text.casefold())


class DocumentIndex:
    """
    Forward-tokenized index over a fixed set of record fields.

    A record matches a query in a field when every query token is a prefix
    of some token in that field. A hit in any one field is enough.
    """

    def __init__(self, fields: Iterable[str]):
        self._fields: list[str] = list(fields)
        self._postings: dict[str, dict[str, dict[int, int]]] = {f: {} for f in self._fields}
        self._terms: dict[int, dict[str, list[str]]] = {}
        self._order: dict[int, int] = {}  # id -> insertion sequence, for ties
        self._seq = 0

    @property
    def fields(self) -> list[str]:
        return list(self._fields)

    @property
    def record_count(self) -> int:
        return len(self._terms)

    def __len__(self) -> int:
        return self.record_count

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._terms

    def add(self, record: Any) -> None:
        """
        Index a record's fields under its id (last write wins).

        Records that are not mappings or carry no id are skipped.
        """
        if not isinstance(record, Mapping):
            logger.debug(f"Skipping non-mapping record: {type(record).__name__}")
            return
        record_id = record.get("id")
        if record_id is None:
            logger.debug("Skipping record without id")
            return
        try:
            hash(record_id)
        except TypeError:
            logger.debug(f"Skipping record with unhashable id {record_id!r}")
            return

        self.remove(record_id)

        terms: dict[str, list[str]] = {}
        for field_name in self._fields:
            postings = self._postings[field_name]
            prefixes: list[str] = []
            for position, token in enumerate(tokenize(to_text(record.get(field_name)))):
                for end in range(1, len(token) + 1):
                    prefix = token[:end]
                    ids = postings.setdefault(prefix, {})
                    if record_id not in ids:
                        ids[record_id] = position
                        prefixes.append(prefix)
            terms[field_name] = prefixes

        self._terms[record_id] = terms
        self._order[record_id] = self._seq
        self._seq += 1

    def remove(self, record_id: Any) -> None:
        """Drop a record's postings. Unknown ids are ignored."""
        terms = self._terms.pop(record_id, None)
        if terms is None:
            return
        self._order.pop(record_id, None)
        for field_name, prefixes in terms.items():
            postings = self._postings[field_name]
            for prefix in prefixes:
                ids = postings.get(prefix)
                if ids is None:
                    continue
                ids.pop(record_id, None)
                if not ids:
                    del postings[prefix]

    def search(self, query: str, limit: int = DEFAULT_LIMIT) -> list[FieldHits]:
        """
        Find records whose indexed fields match the query.

        Args:
            query: Free text; tokenized like the indexed fields
            limit: Maximum number of distinct ids across all fields

        Returns:
            One FieldHits per field with at least one hit, ids best first
        """
        tokens = tokenize(query)
        if not tokens or limit <= 0:
            return []

        results = []
        seen: set[int] = set()
        for field_name in self._fields:
            ranked = self._match_field(field_name, tokens)
            ids = []
            for record_id in ranked:
                if record_id in seen:
                    ids.append(record_id)
                elif len(seen) < limit:
                    seen.add(record_id)
                    ids.append(record_id)
            if ids:
                results.append(FieldHits(field=field_name, ids=ids))
        return results

    def _match_field(self, field_name: str, tokens: list[str]) -> list[int]:
        """Ids where every token hits, ordered by token positions then insertion."""
        postings = self._postings[field_name]
        scores: dict[int, int] | None = None
        for token in tokens:
            hits = postings.get(token)
            if not hits:
                return []
            if scores is None:
                scores = dict(hits)
            else:
                scores = {rid: score + hits[rid] for rid, score in scores.items() if rid in hits}
                if not scores:
                    return []
        return sorted(scores, key=lambda rid: (scores[rid], self._order[rid]))


def create_index(fields: Iterable[str]) -> DocumentIndex:
    """Create an empty index over the given fields."""
    return DocumentIndex(fields)


def build_index(records: Iterable[Any], fields: Iterable[str]) -> DocumentIndex:
    """
    Build an index from a full record snapshot.

    Args:
        records: Snapshot of a collection (mappings with an "id")
        fields: Indexable field names for that collection

    Returns:
        DocumentIndex holding every record
    """
    index = create_index(fields)
    for record in records:
        index.add(record)
    return index

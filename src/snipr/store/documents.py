"""
Document Store.

A minimal keyed document store: collections of JSON-safe dicts addressed
by id. Records are job and feed documents; no query language is needed.

Backends:
    InMemoryDocumentStore: process-local dicts (tests, single-process runs)
    JsonFileDocumentStore: one JSON file per document, atomic writes

Operations:
    get(collection, doc_id)                     -> dict | None
    set(collection, doc_id, doc)                -> None
    update(collection, doc_id, fields)          -> dict   (KeyError if missing)
    append(collection, doc_id, field, item)     -> dict   (KeyError if missing)
    mutate(collection, doc_id, fn)              -> dict   (read-modify-write)

mutate() runs `fn(current_doc_or_None) -> new_doc` under the store lock,
which is what repositories use for check-then-write updates. Returned
documents are copies; callers cannot alias stored state.
"""
from __future__ import annotations

import copy
import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional
from urllib.parse import quote, unquote

from snipr.core.config import DocumentStoreConfig
from snipr.core.logging import get_logger, info

_LOG = get_logger("snipr.documents")

Document = Dict[str, Any]
Mutator = Callable[[Optional[Document]], Document]


class DocumentStore(ABC):
    """Abstract keyed document store."""

    name: str = "base"

    def __init__(self):
        self._lock = threading.RLock()

    @abstractmethod
    def _read(self, collection: str, doc_id: str) -> Optional[Document]:
        raise NotImplementedError

    @abstractmethod
    def _write(self, collection: str, doc_id: str, doc: Document) -> None:
        raise NotImplementedError

    @abstractmethod
    def ids(self, collection: str) -> Iterator[str]:
        raise NotImplementedError

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            doc = self._read(collection, doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, doc: Document) -> None:
        with self._lock:
            self._write(collection, doc_id, copy.deepcopy(doc))

    def mutate(self, collection: str, doc_id: str, fn: Mutator) -> Document:
        with self._lock:
            current = self._read(collection, doc_id)
            new_doc = fn(copy.deepcopy(current) if current is not None else None)
            self._write(collection, doc_id, copy.deepcopy(new_doc))
            return copy.deepcopy(new_doc)

    def update(self, collection: str, doc_id: str, fields: Document) -> Document:
        def _apply(doc: Optional[Document]) -> Document:
            if doc is None:
                raise KeyError(f"{collection}/{doc_id}")
            doc.update(fields)
            return doc
        return self.mutate(collection, doc_id, _apply)

    def append(self, collection: str, doc_id: str, field: str, item: Any) -> Document:
        def _apply(doc: Optional[Document]) -> Document:
            if doc is None:
                raise KeyError(f"{collection}/{doc_id}")
            doc.setdefault(field, []).append(item)
            return doc
        return self.mutate(collection, doc_id, _apply)


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store. Contents are lost when the process exits."""

    name = "memory"

    def __init__(self):
        super().__init__()
        self._data: Dict[str, Dict[str, Document]] = {}

    def _read(self, collection: str, doc_id: str) -> Optional[Document]:
        return self._data.get(collection, {}).get(doc_id)

    def _write(self, collection: str, doc_id: str, doc: Document) -> None:
        self._data.setdefault(collection, {})[doc_id] = doc

    def ids(self, collection: str) -> Iterator[str]:
        with self._lock:
            return iter(list(self._data.get(collection, {})))


class JsonFileDocumentStore(DocumentStore):
    """
    File-backed store: {base_dir}/{collection}/{quoted_id}.json.

    Writes go to a temp file then replace the target, so a crash never
    leaves a truncated document. The lock is per process; run a single
    service process per base_dir.
    """

    name = "file"

    def __init__(self, base_dir: str):
        super().__init__()
        self.base_dir = Path(base_dir)

    def _path(self, collection: str, doc_id: str) -> Path:
        return self.base_dir / quote(collection, safe="") / f"{quote(doc_id, safe='')}.json"

    def _read(self, collection: str, doc_id: str) -> Optional[Document]:
        p = self._path(collection, doc_id)
        if not p.exists():
            return None
        with p.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, collection: str, doc_id: str, doc: Document) -> None:
        p = self._path(collection, doc_id)
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(doc, ensure_ascii=False), encoding="utf-8")
            tmp.replace(p)
        finally:
            if tmp.exists():
                tmp.unlink()

    def ids(self, collection: str) -> Iterator[str]:
        folder = self.base_dir / quote(collection, safe="")
        with self._lock:
            if not folder.is_dir():
                return iter([])
            return iter(sorted(unquote(p.stem) for p in folder.glob("*.json")))


def get_document_store(config: Optional[DocumentStoreConfig] = None) -> DocumentStore:
    """Create the configured document store."""
    config = config or DocumentStoreConfig()
    if config.backend == "file":
        store: DocumentStore = JsonFileDocumentStore(config.base_dir)
    else:
        store = InMemoryDocumentStore()
    info(_LOG, "document_store_ready", backend=store.name)
    return store

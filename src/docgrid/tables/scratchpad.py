"""Typed key/value store threaded through the table refinement stages.

Each stage declares the keys it requires, the keys it may read when
present and the keys it stores. While a stage runs, the scratchpad
enforces that declaration: touching an undeclared key, or starting a
stage whose required key is absent, raises
:class:`ScratchpadContractError`. That is a programming error and is
never caught by the refinement driver.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, Optional, Set

log = logging.getLogger(__name__)


class ScratchpadContractError(RuntimeError):
    """A stage used a scratchpad key outside its declared contract."""


class ScratchpadKey(str, Enum):
    TABULAR_GROUP = "tabular group"
    PROCESSED_TABULAR_GROUP = "processed tabular group"
    SPLIT_TABULAR_GROUPS = "split tabular groups"
    HEADER_CONFIDENCE = "header detection confidence"
    IS_SPLIT_PERMISSIBLE = "is split permissible"
    IS_PARENT_TABLE = "is parent"
    TABLE_INDEX = "table index"
    PAGE_NUMBER = "document page number"
    SPLIT_ROW_INDEX = "split row index"
    DOCUMENT_SOURCE = "document source"
    PREV_TABLES_TO_DELETE = "indices of previous tables to delete"
    GRID_TYPE = "grid based table detection"
    SPLIT_DEPTH = "split depth"
    END_RESULT = "process end result"


# Describe which table a stage works on; readable by every stage for logging.
CONTEXT_KEYS: FrozenSet[ScratchpadKey] = frozenset({
    ScratchpadKey.IS_PARENT_TABLE,
    ScratchpadKey.TABLE_INDEX,
    ScratchpadKey.PAGE_NUMBER,
    ScratchpadKey.SPLIT_ROW_INDEX,
    ScratchpadKey.DOCUMENT_SOURCE,
    ScratchpadKey.SPLIT_DEPTH,
})


@dataclass(frozen=True)
class KeyContract:
    """Keys one stage may touch."""

    name: str
    required: FrozenSet[ScratchpadKey] = frozenset()
    optional: FrozenSet[ScratchpadKey] = frozenset()
    stored: FrozenSet[ScratchpadKey] = frozenset()

    @property
    def readable(self) -> FrozenSet[ScratchpadKey]:
        return self.required | self.optional | self.stored | CONTEXT_KEYS


@dataclass
class Scratchpad:
    """Per-table store; one instance per (table, split) run of the stages."""

    _pad: Dict[ScratchpadKey, Any] = field(default_factory=dict)
    retrieved_keys: Set[ScratchpadKey] = field(default_factory=set)
    stored_keys: Set[ScratchpadKey] = field(default_factory=set)
    _contract: Optional[KeyContract] = field(default=None, repr=False)

    @classmethod
    def seeded(cls, values: Dict[ScratchpadKey, Any]) -> "Scratchpad":
        pad = cls()
        for key, value in values.items():
            pad.store(key, value)
        return pad

    def __contains__(self, key: ScratchpadKey) -> bool:
        return self._pad.get(key) is not None

    @contextmanager
    def contract(self, contract: KeyContract) -> Iterator["Scratchpad"]:
        """Enforce *contract* for the duration of the block."""
        missing = [k.value for k in contract.required if self._pad.get(k) is None]
        if missing:
            raise ScratchpadContractError(
                f"{contract.name}: required keys missing from scratchpad: {sorted(missing)}"
            )
        previous = self._contract
        self._contract = contract
        try:
            yield self
        finally:
            self._contract = previous

    def store(self, key: ScratchpadKey, value: Any) -> None:
        contract = self._contract
        if contract is not None and key not in contract.stored:
            raise ScratchpadContractError(f"{contract.name}: key {key.value!r} not declared as stored")
        log.debug("Storing scratchpad key: %s", key.value)
        self.stored_keys.add(key)
        self._pad[key] = value

    def retrieve(self, key: ScratchpadKey, default: Any = None) -> Any:
        contract = self._contract
        if contract is not None and key not in contract.readable:
            raise ScratchpadContractError(f"{contract.name}: key {key.value!r} not declared as read")
        self.retrieved_keys.add(key)
        value = self._pad.get(key)
        return default if value is None else value

    def require(self, key: ScratchpadKey) -> Any:
        """Retrieve *key*, raising when no value is stored."""
        value = self.retrieve(key)
        if value is None:
            raise ScratchpadContractError(f"No {key.value} retrieved from scratchpad")
        return value

    def retrieve_bool(self, key: ScratchpadKey) -> bool:
        return bool(self.retrieve(key, False))

    def retrieve_int(self, key: ScratchpadKey) -> int:
        return int(self.require(key))

    def update(self, values: Iterable) -> None:
        for key, value in values:
            self.store(key, value)

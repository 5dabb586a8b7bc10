from typing import Dict, Mapping, Optional

REF_BASE = 100
REF_PREFIX = "e"


class RefMap:
    """Maps snapshot references (``e100``, ``e101``...) to CSS selectors.

    Refs are scoped to one snapshot: ``reset`` drops every entry and restarts
    numbering at ``REF_BASE``, so a ref from an older snapshot either points at
    whatever the newest snapshot gave the same number or resolves to nothing.
    Entries are only ever swapped as a whole.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}
        self.counter = REF_BASE

    def reset(self) -> None:
        self._entries = {}
        self.counter = REF_BASE

    def mint(self) -> str:
        ref = f"{REF_PREFIX}{self.counter}"
        self.counter += 1
        return ref

    def replace(self, entries: Mapping[str, str]) -> None:
        self._entries = dict(entries)

    def resolve(self, ref: str) -> Optional[str]:
        return self._entries.get(ref)

    def __contains__(self, ref: object) -> bool:
        return ref in self._entries

    def __len__(self) -> int:
        return len(self._entries)

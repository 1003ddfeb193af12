from dataclasses import dataclass
from types import MappingProxyType

"""
[material_master.py]
Material master snapshot: coil code -> standard parent width and line rhythm.
Loaded once per batch (CSV or Oracle, see db/) and handed to the optimizer as an
immutable copy, so edits to the source table never reach a batch already running.
"""


@dataclass(frozen=True)
class MaterialEntry:
    code: str
    description: str
    width: float
    rate: float = 0.0  # t/h


class MaterialMaster:

    def __init__(self, entries=()):
        table = {}
        for entry in entries:
            table[str(entry.code).strip()] = entry
        self._entries = MappingProxyType(table)

    @classmethod
    def from_records(cls, records):
        entries = []
        for row in records:
            entries.append(MaterialEntry(
                code=str(row['code']).strip(),
                description=str(row.get('description') or ''),
                width=float(row['width']),
                rate=float(row.get('rate') or 0.0),
            ))
        return cls(entries)

    def get(self, code):
        if code is None:
            return None
        return self._entries.get(str(code).strip())

    def width_for(self, code):
        entry = self.get(code)
        return entry.width if entry else None

    def __contains__(self, code):
        return self.get(code) is not None

    def __len__(self):
        return len(self._entries)

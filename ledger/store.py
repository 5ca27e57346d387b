"""Row store standing in for the remote database.

Four tables of plain dict rows in the external record schema. Reads return
copies, so callers can never alias stored rows. When a path is given the
store is loaded from and flushed to a JSON file after every write; a
write whose flush fails leaves both the file and the tables unchanged.
"""
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
from uuid import uuid4

from ledger.exceptions import StoreError

logger = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
PLATFORMS = "platforms"
DEBTS = "debts"
GOALS = "goals"
TABLES = (TRANSACTIONS, PLATFORMS, DEBTS, GOALS)

PathLike = Union[str, os.PathLike]


def _sort_key(field: str):
    # rows missing the field sort last in ascending order
    def key(row: Mapping[str, Any]):
        value = row.get(field)
        return (value is None, value if value is not None else "")
    return key


class JsonStore:

    def __init__(self, path: Optional[PathLike] = None, seed: Optional[PathLike] = None):
        self.path = Path(path) if path else None
        self._tables: Dict[str, List[dict]] = {name: [] for name in TABLES}
        source = self.path if self.path and self.path.exists() else (Path(seed) if seed else None)
        if source:
            self._load(source)

    def _load(self, source: Path) -> None:
        try:
            with open(source, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"cannot read store file {source}: {e}") from e
        for name in TABLES:
            self._tables[name] = [dict(row) for row in data.get(name, [])]
        logger.info(
            "Loaded %s (%s)",
            source,
            ", ".join(f"{name}={len(rows)}" for name, rows in self._tables.items()),
        )

    def _flush(self, tables: Mapping[str, List[dict]]) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(tables, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise StoreError(f"cannot write store file {self.path}: {e}") from e

    def _swap(self, table: str, rows: List[dict], row_id: str) -> None:
        # memory only changes once the file write has succeeded
        tables = {**self._tables, table: rows}
        try:
            self._flush(tables)
        except StoreError as e:
            raise StoreError(str(e), table=table, row_id=str(row_id)) from e
        self._tables = tables

    def _table(self, table: str) -> List[dict]:
        if table not in self._tables:
            raise StoreError(f"unknown table {table!r}", table=table)
        return self._tables[table]

    def _index(self, table: str, row_id: str) -> int:
        for i, row in enumerate(self._table(table)):
            if str(row.get("id")) == str(row_id):
                return i
        raise StoreError(f"no row {row_id!r} in {table}", table=table, row_id=str(row_id))

    def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[dict]:
        rows = [
            row for row in self._table(table)
            if all(row.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by:
            rows = sorted(rows, key=_sort_key(order_by), reverse=descending)
        return copy.deepcopy(rows)

    def insert(self, table: str, row: Mapping[str, Any]) -> dict:
        rows = self._table(table)
        new_row = copy.deepcopy(dict(row))
        new_row.setdefault("id", uuid4().hex)
        if any(str(r.get("id")) == str(new_row["id"]) for r in rows):
            raise StoreError(
                f"duplicate id {new_row['id']!r} in {table}", table=table, row_id=str(new_row["id"])
            )
        self._swap(table, rows + [new_row], new_row["id"])
        logger.debug("Inserted %s/%s", table, new_row["id"])
        return copy.deepcopy(new_row)

    def update(self, table: str, row_id: str, changes: Mapping[str, Any]) -> dict:
        i = self._index(table, row_id)
        rows = list(self._tables[table])
        row = {**rows[i], **{k: copy.deepcopy(v) for k, v in changes.items() if k != "id"}}
        rows[i] = row
        self._swap(table, rows, row_id)
        logger.debug("Updated %s/%s: %s", table, row_id, sorted(changes))
        return copy.deepcopy(row)

    def delete(self, table: str, row_id: str) -> bool:
        i = self._index(table, row_id)
        rows = list(self._tables[table])
        del rows[i]
        self._swap(table, rows, row_id)
        logger.debug("Deleted %s/%s", table, row_id)
        return True

from typing import Optional, TypedDict

from ..protocol.page import Column
from ..types import parse_signature


class ColumnInfo(TypedDict):
    """Represents metadata for a result column."""

    name: str
    type: str
    kind: str
    ordinal: int
    nullable: bool
    length: Optional[int]
    precision: Optional[int]
    scale: Optional[int]


class DBAPITypeObject:
    """PEP 249 type object comparing equal to every matching type code."""

    def __init__(self, *kinds: str) -> None:
        self.kinds = frozenset(kinds)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, str):
            return parse_signature(other).kind in self.kinds
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.kinds)


STRING = DBAPITypeObject("string")
BINARY = DBAPITypeObject("binary")
NUMBER = DBAPITypeObject("integer", "double", "decimal")
DATETIME = DBAPITypeObject("date", "time", "timestamp")
ROWID = DBAPITypeObject()


def describe_as_column_info(columns: list[Column]) -> list[ColumnInfo]:
    """
    Convert coordinator column descriptors to column metadata.

    Args:
        columns (list[Column]): Column descriptors of the first result page.

    Returns:
        list[ColumnInfo]: Column metadata with type parameters resolved.
    """

    def as_column_info(column: Column) -> ColumnInfo:
        signature = column.signature
        info: ColumnInfo = {
            "name": column.name,
            "type": column.type,
            "kind": signature.kind,
            "ordinal": column.ordinal,
            # The statement protocol does not report nullability.
            "nullable": True,
            "length": None,
            "precision": None,
            "scale": None,
        }

        if signature.kind == "decimal":
            info["precision"] = signature.precision if signature.precision is not None else 38
            info["scale"] = signature.scale if signature.scale is not None else 0
        elif signature.kind == "string" and signature.precision is not None:
            info["length"] = signature.precision
        elif signature.kind in ("time", "timestamp"):
            info["precision"] = signature.precision if signature.precision is not None else 3

        return info

    return [as_column_info(c) for c in columns]


def describe_as_description(
    columns: list[Column],
) -> list[tuple[str, str, None, Optional[int], Optional[int], Optional[int], bool]]:
    """Convert column descriptors to PEP 249 ``cursor.description`` tuples."""
    return [
        (c["name"], c["type"], None, c["length"], c["precision"], c["scale"], c["nullable"])
        for c in describe_as_column_info(columns)
    ]

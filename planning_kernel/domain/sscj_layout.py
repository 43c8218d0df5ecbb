"""
SSCJ worksheet geometry (``planning_kernel.domain.sscj_layout``).

Responsibility
--------------
Single source of truth for the fixed cell positions of the SSCJ report:
which item field lives in which column, how the two header rows are merged,
and which number format each column carries.  The export formatter writes
with it and the bulk reconciler reads SSCJ workbooks back with it, so the
two can never drift apart.

Architecture position
---------------------
**Kernel domain layer** -- pure constants.  ZERO I/O.

Invariants enforced
-------------------
* 26 columns, A through Z, in fixed order.
* Row 1 title and row 2 grand total span A:Z.
* Rows 3-4 hold the two-level header; data starts on row 5.
* Downstream tooling reads by position, never by header text.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from openpyxl.utils import get_column_letter


class CellKind(str, Enum):
    SEQ = "seq"
    TEXT = "text"
    QTY = "qty"
    MONEY = "money"


QTY_FORMAT = "#,##0"
MONEY_FORMAT = "#,##0.00"

TITLE_ROW = 1
TOTAL_ROW = 2
GROUP_HEADER_ROW = 3
SUB_HEADER_ROW = 4
FIRST_DATA_ROW = 5

HISTORY_YEARS = 3


@dataclass(frozen=True)
class SscjColumn:
    """One physical column of the report.

    ``source`` names the item attribute the value comes from.  Value columns
    (kind MONEY inside a pair) use the quantity attribute of their pair and
    are computed as quantity x unit price.
    """
    index: int
    source: str
    kind: CellKind
    header: str
    group: str | None = None

    @property
    def letter(self) -> str:
        return get_column_letter(self.index)


@dataclass(frozen=True)
class SscjGroup:
    """A horizontally merged row-3 header spanning several row-4 sub-headers."""
    key: str
    header: str
    first_index: int
    last_index: int

    @property
    def span(self) -> str:
        first = get_column_letter(self.first_index)
        last = get_column_letter(self.last_index)
        return f"{first}{GROUP_HEADER_ROW}:{last}{GROUP_HEADER_ROW}"


SEQ_HEADER = "ลำดับ"
QTY_SUBHEADER = "จำนวน"
VALUE_SUBHEADER = "มูลค่า"

# (group key, quantity attribute, default group header)
VALUE_PAIRS: tuple[tuple[str, str, str], ...] = (
    ("funding_a", "budget_qty", "เงินงบประมาณ"),
    ("funding_b", "fund_qty", "เงินบำรุง"),
    ("q1", "q1_qty", "ไตรมาส 1"),
    ("q2", "q2_qty", "ไตรมาส 2"),
    ("q3", "q3_qty", "ไตรมาส 3"),
    ("q4", "q4_qty", "ไตรมาส 4"),
    ("total", "requested_qty", "รวมทั้งสิ้น"),
)


def _build_columns() -> tuple[SscjColumn, ...]:
    cols = [
        SscjColumn(1, "seq", CellKind.SEQ, SEQ_HEADER),
        SscjColumn(2, "drug_code", CellKind.TEXT, "รหัสยา"),
        SscjColumn(3, "drug_name", CellKind.TEXT, "ชื่อยา"),
        SscjColumn(4, "package_size", CellKind.TEXT, "ขนาดบรรจุ"),
        SscjColumn(5, "unit", CellKind.TEXT, "หน่วยนับ"),
    ]
    # Sub-headers are the fiscal-year labels, filled in at render time.
    for offset in range(HISTORY_YEARS):
        cols.append(
            SscjColumn(6 + offset, f"history_{offset}", CellKind.QTY, "", group="history")
        )
    cols.extend([
        SscjColumn(9, "estimated_usage", CellKind.QTY, "ประมาณการใช้"),
        SscjColumn(10, "current_stock", CellKind.QTY, "คงคลัง"),
        SscjColumn(11, "estimated_purchase", CellKind.QTY, "ประมาณการจัดซื้อ"),
        SscjColumn(12, "unit_price", CellKind.MONEY, "ราคาต่อหน่วย"),
    ])
    index = 13
    for key, qty_attr, _ in VALUE_PAIRS:
        cols.append(SscjColumn(index, qty_attr, CellKind.QTY, QTY_SUBHEADER, group=key))
        cols.append(SscjColumn(index + 1, qty_attr, CellKind.MONEY, VALUE_SUBHEADER, group=key))
        index += 2
    return tuple(cols)


COLUMNS: tuple[SscjColumn, ...] = _build_columns()
COLUMN_COUNT = len(COLUMNS)
LAST_LETTER = get_column_letter(COLUMN_COUNT)

HISTORY_GROUP = SscjGroup("history", "อัตราการใช้ย้อนหลัง", 6, 8)


def value_groups(labels: dict[str, str] | None = None) -> tuple[SscjGroup, ...]:
    """Quantity/value pair groups, M3:N3 through Y3:Z3, with optional relabels."""
    labels = labels or {}
    groups = []
    index = 13
    for key, _, default_header in VALUE_PAIRS:
        groups.append(
            SscjGroup(key, labels.get(key, default_header), index, index + 1)
        )
        index += 2
    return tuple(groups)


def single_columns() -> tuple[SscjColumn, ...]:
    """Columns whose header merges vertically across rows 3-4."""
    return tuple(c for c in COLUMNS if c.group is None)


def history_years(fiscal_year: int) -> tuple[int, ...]:
    """The fiscal years shown in the history group, oldest first."""
    return tuple(fiscal_year - HISTORY_YEARS + i for i in range(HISTORY_YEARS))


def full_width_span(row: int) -> str:
    return f"A{row}:{LAST_LETTER}{row}"

"""
Order list parser for manual recovery runs.

Reads a CSV or Excel export whose first column holds order display names.
The first row is a header and is discarded whatever it says.
"""

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Optional, Union
import structlog

import pandas as pd

from exceptions import OrderListParseError

logger = structlog.get_logger(__name__)

EXCEL_EXTENSIONS = {".xlsx", ".xlsm", ".xls"}


@dataclass
class OrderListParseResult:
    """Order names read from a replay list."""
    order_names: list[str] = field(default_factory=list)
    skipped_rows: list[int] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return len(self.order_names) > 0


def _is_excel(filename: Optional[str]) -> bool:
    return bool(filename) and Path(filename).suffix.lower() in EXCEL_EXTENSIONS


def _read_frame(source: Union[str, Path, bytes, BytesIO], filename: Optional[str]) -> pd.DataFrame:
    if isinstance(source, bytes):
        source = BytesIO(source)

    # Read without a header so the first row can be dropped unconditionally
    if _is_excel(filename):
        return pd.read_excel(source, header=None, dtype=str)
    return pd.read_csv(source, header=None, dtype=str, skip_blank_lines=True)


def parse_order_list(
    source: Union[str, Path, bytes, BytesIO],
    filename: Optional[str] = None
) -> OrderListParseResult:
    """
    Parse a replay order list.

    Args:
        source: File path, raw bytes, or BytesIO
        filename: Name used to pick CSV vs Excel (defaults to the path name)

    Returns:
        OrderListParseResult with order names in file order

    Raises:
        OrderListParseError: If the file cannot be read
    """
    if filename is None and isinstance(source, (str, Path)):
        filename = str(source)

    logger.info("parsing_order_list", filename=filename)

    try:
        frame = _read_frame(source, filename)
    except pd.errors.EmptyDataError:
        logger.warning("order_list_empty", filename=filename)
        return OrderListParseResult()
    except (OSError, ValueError, pd.errors.ParserError) as e:
        logger.error("order_list_read_failed", filename=filename, error=str(e))
        raise OrderListParseError(
            message=f"Could not read order list: {e}",
            details={"filename": filename}
        )

    result = OrderListParseResult()

    if frame.empty or len(frame.columns) == 0:
        return result

    # Row 0 is the header
    for row_number, value in frame.iloc[1:, 0].items():
        if pd.isna(value) or not str(value).strip():
            result.skipped_rows.append(int(row_number) + 1)
            continue
        result.order_names.append(str(value).strip())

    logger.info(
        "order_list_parsed",
        filename=filename,
        orders=len(result.order_names),
        skipped=len(result.skipped_rows)
    )
    return result

"""
File parsers module.
"""

from parsers.order_list_parser import (
    parse_order_list,
    OrderListParseResult,
)

__all__ = [
    "parse_order_list",
    "OrderListParseResult",
]

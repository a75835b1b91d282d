"""Stock level classification for inventory records."""

from pharmacy_kernel.domain.statuses import StockStatus


def derive_stock_status(quantity: int, reorder_point: int) -> StockStatus:
    """
    Classify a stock level.

    OUT_OF_STOCK iff quantity is zero, LOW_STOCK iff 0 < quantity <=
    reorder_point, otherwise IN_STOCK.

    Raises:
        ValueError: If quantity is negative.
    """
    if quantity < 0:
        raise ValueError(f"Stock quantity cannot be negative: {quantity}")
    if quantity == 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= reorder_point:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK

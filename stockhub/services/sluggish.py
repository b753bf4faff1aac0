def next_sluggish_days(prev_days: int | None, stock: int, daily_sales: int) -> int:
    """Advance the sluggish-days counter for one product/warehouse by one import cycle.

    ``prev_days`` is None when the pair has no stored record yet. Any sale or an
    empty shelf resets the counter; stock sitting unsold extends it by one.
    """
    if daily_sales > 0:
        return 0
    if stock <= 0:
        return 0
    return (prev_days or 0) + 1


def is_sluggish(sluggish_days: int, threshold_days: int) -> bool:
    return sluggish_days > threshold_days

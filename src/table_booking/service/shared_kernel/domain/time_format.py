def format_decimal_time(decimal_time: float, clock: int = 12) -> str:
    """
    Format a decimal hour (18.5) as a clock string.

    >>> format_decimal_time(18.5)
    '6:30 PM'
    >>> format_decimal_time(9.25, 24)
    '09:15'
    """
    hours = int(decimal_time)
    minutes = round((decimal_time - hours) * 60)
    if minutes == 60:
        hours, minutes = hours + 1, 0
    hours %= 24
    if clock == 24:
        return f'{hours:02d}:{minutes:02d}'
    suffix = 'AM' if hours < 12 else 'PM'
    display_hour = hours % 12 or 12
    return f'{display_hour}:{minutes:02d} {suffix}'

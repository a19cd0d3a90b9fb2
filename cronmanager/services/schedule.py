from __future__ import annotations

MIN_FIELDS = 5
# 5 Felder Standard, optional Sekunden und Jahr
MAX_FIELDS = 7


def is_valid_schedule(expr: str) -> bool:
    """
    Rein syntaktischer Check einer Cron-Expression.

    Wertebereiche, Steps und Ranges werden NICHT geprüft; was formal
    passt, landet beim Install und wird dort von `crontab` selbst validiert.
    """
    fields = (expr or "").split()
    if len(fields) < MIN_FIELDS or len(fields) > MAX_FIELDS:
        return False
    return all(fields)

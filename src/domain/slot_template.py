# src/domain/slot_template.py

from dataclasses import dataclass
from datetime import time


@dataclass(frozen=True)
class SlotWindow:
    time_slot: str
    start_time: time
    end_time: time


OPENING_HOUR = 10
CLOSING_HOUR = 21


def _build_daily_template() -> tuple[SlotWindow, ...]:
    windows = []
    for hour in range(OPENING_HOUR, CLOSING_HOUR):
        windows.append(
            SlotWindow(
                time_slot=f"{hour:02d}:00 - {hour + 1:02d}:00",
                start_time=time(hour, 0),
                end_time=time(hour + 1, 0),
            )
        )
    return tuple(windows)


# One-hour windows, 10:00 - 21:00.
DAILY_TEMPLATE: tuple[SlotWindow, ...] = _build_daily_template()

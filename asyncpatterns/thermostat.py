"""A simulated thermostat: a display, a heater and heat loss polled side by side."""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TextIO

_CLEAR_SCREEN = "\x1b[2J\x1b[H"


@dataclass
class Thermostat:
    """Shared state; temperatures are in hundredths of a degree."""

    temp: int = 2090
    desired_temp: int = 2100
    heat_on: bool = False


def _degrees(hundredths: int) -> str:
    return f"{hundredths / 100:g}"


def render(temp: int, desired_temp: int, heat_on: bool) -> str:
    return (
        f"Temperature: {_degrees(temp)}\n"
        f"Desired Temp: {_degrees(desired_temp)}\n"
        f"Heater On: {'true' if heat_on else 'false'}"
    )


class DisplayTask:
    """Redraws when the temperature changes and switches the heater on or off."""

    def __init__(self, thermostat: Thermostat) -> None:
        self.thermostat = thermostat
        self.temp_snapshot = thermostat.temp

    def poll(self) -> str | None:
        """Return the text to show, or None if the temperature has not changed.

        The text shows the heater state as it was before this poll switched it.
        """
        state = self.thermostat
        current, desired, heat_on = state.temp, state.desired_temp, state.heat_on
        if current == self.temp_snapshot:
            return None
        if current < desired and not heat_on:
            state.heat_on = True
        elif current > desired and heat_on:
            state.heat_on = False
        self.temp_snapshot = current
        return render(current, desired, heat_on)


class HeaterTask:
    """Raises the temperature by 3 for each full interval the heater stays on."""

    def __init__(self, thermostat: Thermostat, interval: float = 3.0) -> None:
        self.thermostat = thermostat
        self.interval = interval
        self.time_snapshot = time.monotonic()

    def poll(self, now: float | None = None) -> bool:
        """Return True if the temperature was raised."""
        now = time.monotonic() if now is None else now
        if not self.thermostat.heat_on:
            self.time_snapshot = now
            return False
        if now - self.time_snapshot < self.interval:
            return False
        self.thermostat.temp += 3
        self.time_snapshot = now
        return True


class HeatLossTask:
    """Lowers the temperature by 1 once more than an interval has passed."""

    def __init__(self, thermostat: Thermostat, interval: float = 3.0) -> None:
        self.thermostat = thermostat
        self.interval = interval
        self.time_snapshot = time.monotonic()

    def poll(self, now: float | None = None) -> bool:
        """Return True if the temperature was lowered."""
        now = time.monotonic() if now is None else now
        if now - self.time_snapshot > self.interval:
            self.thermostat.temp -= 1
            self.time_snapshot = now
            return True
        return False


async def run(
    thermostat: Thermostat | None = None,
    output: TextIO | None = None,
    tick: float = 0.01,
) -> None:
    """Poll the display, heater and heat loss every ``tick`` seconds until cancelled."""
    state = thermostat if thermostat is not None else Thermostat()
    out = output if output is not None else sys.stdout
    display = DisplayTask(state)
    heater = HeaterTask(state)
    heat_loss = HeatLossTask(state)

    async def drive_display() -> None:
        while True:
            text = display.poll()
            if text is not None:
                out.write(_CLEAR_SCREEN + text + "\n")
                out.flush()
            await asyncio.sleep(tick)

    async def drive(task: HeaterTask | HeatLossTask) -> None:
        while True:
            task.poll()
            await asyncio.sleep(tick)

    await asyncio.gather(drive_display(), drive(heat_loss), drive(heater))


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the thermostat simulation.")
    parser.add_argument("--tick", type=float, default=0.01, help="seconds between polls")
    args = parser.parse_args(argv)
    try:
        asyncio.run(run(tick=args.tick))
    except KeyboardInterrupt:
        pass
    return 0
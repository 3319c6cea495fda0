"""Terminal progress bar for the record stream.

The bar tracks the reference position of the last processed record within
its sequence and restarts whenever the stream moves to a new sequence.
Progress is shown only when stderr is a terminal; set
ProgressBar.global_switch to False to silence it everywhere.
"""
from __future__ import annotations

import sys
from typing import Any, Callable, Mapping, Optional, TextIO, Union


class ProgressBar:
    """Single-line progress bar.

    Attributes:
        global_switch: Class-level flag enabling or disabling every bar
        body: Characters revealed as progress is made
        output: Stream the bar is drawn on
    """

    global_switch: bool = sys.stderr.isatty()

    format: Callable[[str], None]
    clean: Callable[[], None]
    update: Callable[[Union[int, float]], None]

    def __init__(self, output: TextIO = sys.stderr, body: str = "<1II1>" * 12,
                 prefix: str = ">", suffix: str = "<") -> None:
        self.output = output
        self.body = body
        self.fmt = "\r" + prefix + "{:<" + str(len(body)) + "}" + suffix
        self.pos = 0
        self._unit = 1.0
        self._next_update = 1.0
        if self.global_switch:
            self.enable_bar()
        else:
            self.disable_bar()

    @classmethod
    def _pass(cls, *args: Any, **kwargs: Any) -> None:
        pass

    def enable_bar(self) -> None:
        if self.global_switch:
            self.format = self._format
            self.clean = self._clean
            self.update = self._update

    def disable_bar(self) -> None:
        self.format = self.clean = self.update = self._pass

    def set(self, name: str, maxval: Union[int, float]) -> None:
        """Restart the bar for a task of size maxval."""
        self._unit = float(maxval) / len(self.body)
        self.pos = 0
        self._next_update = self._unit

    def _update(self, val: Union[int, float]) -> None:
        if val > self._next_update:
            while val > self._next_update:
                self.pos += 1
                self._next_update += self._unit
            self.format(self.body[:self.pos])

    def _format(self, s: str) -> None:
        self.output.write(self.fmt.format(s))

    def _clean(self) -> None:
        self.output.write("\r\033[K")
        self.output.flush()


class ReferencePositionProgress(ProgressBar):
    """ProgressBar driven by (sequence, position) of coordinate sorted records.

    Args:
        sequence_lengths: Reference sequence name to length
    """

    def __init__(self, sequence_lengths: Mapping[str, int], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.sequence_lengths = sequence_lengths
        self.current: Optional[str] = None

    def step(self, sequence: Optional[str], position: int) -> None:
        if sequence is None:
            return
        if sequence != self.current:
            self.clean()
            self.current = sequence
            self.set(sequence, max(self.sequence_lengths.get(sequence, 1), 1))
        self.update(position)

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Sequence, Union

from ..errors import ConfigurationError


@dataclass(frozen=True)
class MotionShift:
    """Integer pixel displacement of one frame: dx moves columns, dy moves rows."""

    dx: int = 0
    dy: int = 0


class MotionShiftSequence:
    """
    Ordered per-frame motion shifts; entry i belongs to observed frame i.

    Args:
        motion_shifts (Sequence[MotionShift]): one shift per frame, in frame order.
    """

    def __init__(self, motion_shifts: Sequence[MotionShift] = ()):
        self._motion_shifts: List[MotionShift] = [MotionShift(int(s.dx), int(s.dy)) for s in motion_shifts]

    @classmethod
    def load_from_file(cls, filepath: Union[str, Path]) -> "MotionShiftSequence":
        """
        Reads a motion sequence text file with one "dx dy" pair per line.
        Blank lines and lines starting with '#' are ignored.
        """
        filepath = Path(filepath)
        print(f"Loading motion sequence from {filepath}...")
        motion_shifts = []
        with open(filepath, 'r', encoding='utf-8') as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                fields = line.replace(',', ' ').split()
                if len(fields) != 2:
                    raise ConfigurationError(
                        f"{filepath}:{line_number}: expected 'dx dy', got '{line}'.")
                try:
                    motion_shifts.append(MotionShift(int(fields[0]), int(fields[1])))
                except ValueError as exc:
                    raise ConfigurationError(
                        f"{filepath}:{line_number}: motion shifts must be integers, got '{line}'.") from exc
        return cls(motion_shifts)

    def save_to_file(self, filepath: Union[str, Path]) -> None:
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w', encoding='utf-8') as f:
            for motion_shift in self._motion_shifts:
                f.write(f"{motion_shift.dx} {motion_shift.dy}\n")

    def __getitem__(self, index: int) -> MotionShift:
        if not 0 <= index < len(self._motion_shifts):
            raise IndexError(
                f"Motion shift index {index} out of range for a sequence of {len(self._motion_shifts)} shifts.")
        return self._motion_shifts[index]

    def __len__(self) -> int:
        return len(self._motion_shifts)

    def __iter__(self) -> Iterator[MotionShift]:
        return iter(self._motion_shifts)

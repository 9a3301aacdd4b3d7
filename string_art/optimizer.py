# string_art/optimizer.py
"""
Greedy line selection.

Starting at pin 0, each step picks the legal next pin whose cached line
covers the most remaining error, subtracts the ink weight along that line
and moves there. A 20-pin FIFO of recent pins forbids immediate backtracking;
when it rules out every candidate the run stops early (STALLED).
"""
import enum
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .arrays import pin_distance
from .constants import PROGRESS_INTERVAL, RECENT_PINS_WINDOW
from .line_cache import LineCache
from .pins import PinCoordinate, get_valid_target_pins

logger = logging.getLogger(__name__)


class OptimizerState(enum.Enum):
    READY = "ready"
    STEPPING = "stepping"
    DONE = "done"
    STALLED = "stalled"


@dataclass
class OptimizationProgress:
    lines_drawn: int
    total_lines: int
    percent_complete: float
    current_pin: int
    next_pin: int
    thread_length: float


@dataclass
class ProgressEvent:
    progress: OptimizationProgress
    line_sequence: List[int]
    pin_coordinates: Sequence[PinCoordinate]


ProgressCallback = Callable[[OptimizationProgress, List[int], Sequence[PinCoordinate]], None]


@dataclass
class Optimization:
    """Mutable state of one run. Owns its error matrix."""

    error_matrix: np.ndarray
    pin_coordinates: Sequence[PinCoordinate]
    line_cache: LineCache
    number_of_lines: int
    line_weight: float
    min_distance: int
    scale_factor: float = 1.0

    current_pin: int = 0
    line_sequence: List[int] = field(default_factory=lambda: [0])
    thread_length: float = 0.0
    recent_pins: deque = field(default_factory=lambda: deque(maxlen=RECENT_PINS_WINDOW))
    state: OptimizerState = OptimizerState.READY

    @property
    def lines_drawn(self) -> int:
        return len(self.line_sequence) - 1

    @property
    def finished(self) -> bool:
        return self.state in (OptimizerState.DONE, OptimizerState.STALLED)

    def step(self) -> Optional[int]:
        """Draw one line. Returns the chosen pin, or None once finished."""
        if self.finished:
            return None
        if self.lines_drawn >= self.number_of_lines:
            self.state = OptimizerState.DONE
            return None

        self.state = OptimizerState.STEPPING
        best_pin, _ = find_best_next_pin(
            self.current_pin,
            self.error_matrix,
            self.line_cache,
            self.recent_pins,
            self.min_distance,
        )
        if best_pin == -1:
            self.state = OptimizerState.STALLED
            logger.warning(
                "No valid next pin from pin %d after %d lines, stopping optimization",
                self.current_pin, self.lines_drawn,
            )
            return None

        line = self.line_cache.get_line(best_pin, self.current_pin)
        if line is not None:
            apply_line_mask(self.error_matrix, line, self.line_weight)

        distance = pin_distance(
            self.pin_coordinates[self.current_pin], self.pin_coordinates[best_pin]
        )
        self.thread_length += distance * self.scale_factor
        self.line_sequence.append(best_pin)
        self.recent_pins.append(best_pin)
        self.current_pin = best_pin

        if self.lines_drawn >= self.number_of_lines:
            self.state = OptimizerState.DONE
        return best_pin


def create_error_matrix(pixel_buffer: np.ndarray) -> np.ndarray:
    """``255 - pixel`` as float32; darker pixels want more thread."""
    return 255.0 - np.asarray(pixel_buffer, dtype=np.float32)


def calculate_line_error(error_matrix: np.ndarray, line: Tuple[np.ndarray, np.ndarray]) -> float:
    xs, ys = line
    return float(error_matrix[ys, xs].sum(dtype=np.float64))


def apply_line_mask(
    error_matrix: np.ndarray,
    line: Tuple[np.ndarray, np.ndarray],
    line_weight: float,
) -> None:
    """
    Subtract ``line_weight`` at every sample (a pixel sampled twice is hit
    twice) and clamp the touched pixels to [0, 255].
    """
    xs, ys = line
    np.subtract.at(error_matrix, (ys, xs), line_weight)
    error_matrix[ys, xs] = np.clip(error_matrix[ys, xs], 0, 255)


def find_best_next_pin(
    current_pin: int,
    error_matrix: np.ndarray,
    line_cache: LineCache,
    recent_pins,
    min_distance: int,
) -> Tuple[int, float]:
    """
    Highest scoring legal pin and its score, or (-1, -1) when no candidate
    is left. Ties keep the candidate with the smallest offset.
    """
    best_pin = -1
    max_error = -1.0

    candidates = get_valid_target_pins(
        current_pin, min_distance, line_cache.number_of_pins, recent_pins
    )
    for pin in candidates:
        index = line_cache.index(pin, current_pin)
        xs = line_cache.x[index]
        if xs is None:
            continue
        score = calculate_line_error(error_matrix, (xs, line_cache.y[index])) * line_cache.weight[index]
        if score > max_error:
            max_error = score
            best_pin = pin

    return best_pin, max_error


def iter_optimization(optimization: Optimization) -> Iterator[ProgressEvent]:
    """
    Run ``optimization`` to completion, yielding a progress event after the
    first line, every 10th line after it and the final line. Stop iterating
    to abandon the run.
    """
    total = optimization.number_of_lines
    while not optimization.finished:
        previous_pin = optimization.current_pin
        chosen = optimization.step()
        if chosen is None:
            break

        line_index = optimization.lines_drawn - 1
        if line_index % PROGRESS_INTERVAL == 0 or line_index == total - 1:
            progress = OptimizationProgress(
                lines_drawn=optimization.lines_drawn,
                total_lines=total,
                percent_complete=optimization.lines_drawn / total * 100,
                current_pin=previous_pin,
                next_pin=chosen,
                thread_length=optimization.thread_length,
            )
            logger.debug(
                "Line %d/%d: %d -> %d", progress.lines_drawn, total, previous_pin, chosen
            )
            yield ProgressEvent(
                progress=progress,
                line_sequence=list(optimization.line_sequence),
                pin_coordinates=optimization.pin_coordinates,
            )


def optimize_string_art(
    error_matrix: np.ndarray,
    pin_coordinates: Sequence[PinCoordinate],
    line_cache: LineCache,
    number_of_lines: int,
    line_weight: float,
    min_distance: int,
    scale_factor: float = 1.0,
    on_progress: Optional[ProgressCallback] = None,
) -> Optimization:
    """
    Greedy optimisation over ``error_matrix`` (modified in place). Returns the
    finished ``Optimization`` holding the sequence, thread length and state.
    """
    optimization = Optimization(
        error_matrix=error_matrix,
        pin_coordinates=pin_coordinates,
        line_cache=line_cache,
        number_of_lines=number_of_lines,
        line_weight=line_weight,
        min_distance=min_distance,
        scale_factor=scale_factor,
    )
    for event in iter_optimization(optimization):
        if on_progress is not None:
            on_progress(event.progress, event.line_sequence, event.pin_coordinates)
    return optimization

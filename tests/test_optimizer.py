from collections import deque

import numpy as np
import pytest

from string_art.image_processor import convert_to_grayscale, image_to_pixel_buffer
from string_art.line_cache import precalculate_line_cache
from string_art.optimizer import (
    Optimization,
    OptimizerState,
    apply_line_mask,
    calculate_line_error,
    create_error_matrix,
    find_best_next_pin,
    iter_optimization,
    optimize_string_art,
)
from string_art.pins import calculate_circular_pins, calculate_min_pin_distance


def make_run(pixel_buffer, n_pins=36, min_distance=3, lines=25, weight=20, scale_factor=1.0):
    pins = calculate_circular_pins(n_pins, pixel_buffer.shape[0])
    cache = precalculate_line_cache(pins, min_distance)
    return Optimization(
        error_matrix=create_error_matrix(pixel_buffer),
        pin_coordinates=pins,
        line_cache=cache,
        number_of_lines=lines,
        line_weight=weight,
        min_distance=min_distance,
        scale_factor=scale_factor,
    )


class TestErrorMatrix:
    def test_inverted_float32(self):
        err = create_error_matrix(np.array([[0, 255], [100, 200]], dtype=np.uint8))
        assert err.dtype == np.float32
        assert err.tolist() == [[255, 0], [155, 55]]

    def test_line_error_sums_samples(self):
        err = np.arange(25, dtype=np.float32).reshape(5, 5)
        line = (np.array([0, 1, 2]), np.array([1, 1, 1]))
        assert calculate_line_error(err, line) == 5 + 6 + 7

    def test_mask_clamps_at_zero(self):
        err = np.full((3, 3), 10, dtype=np.float32)
        apply_line_mask(err, (np.array([0, 1, 2]), np.array([0, 0, 0])), 20)
        assert err[0].tolist() == [0, 0, 0]
        assert err[1].tolist() == [10, 10, 10]

    def test_duplicate_samples_hit_twice(self):
        err = np.full((2, 2), 100, dtype=np.float32)
        apply_line_mask(err, (np.array([1, 1]), np.array([0, 0])), 20)
        assert err[0, 1] == 60


class TestFindBestNextPin:
    @pytest.fixture
    def cache(self):
        return precalculate_line_cache(calculate_circular_pins(12, 20), 2)

    def test_ties_take_smallest_offset(self, cache):
        err = np.zeros((20, 20), dtype=np.float32)
        assert find_best_next_pin(0, err, cache, deque(), 2) == (2, 0.0)

    def test_prefers_uncovered_error(self, cache):
        err = np.zeros((20, 20), dtype=np.float32)
        xs, ys = cache.get_line(0, 6)
        err[ys, xs] = 255
        pin, score = find_best_next_pin(0, err, cache, deque(), 2)
        assert pin == 6
        assert score > 0

    def test_skips_recent_pins(self, cache):
        err = np.zeros((20, 20), dtype=np.float32)
        pin, _ = find_best_next_pin(0, err, cache, deque([2]), 2)
        assert pin == 3

    def test_nothing_left(self, cache):
        err = np.zeros((20, 20), dtype=np.float32)
        recent = deque(range(12))
        assert find_best_next_pin(0, err, cache, recent, 2) == (-1, -1)

    def test_white_image_first_move(self):
        white = np.full((10, 10, 3), 255, dtype=np.uint8)
        buffer = image_to_pixel_buffer(convert_to_grayscale(white))
        run = make_run(buffer, n_pins=12, min_distance=2, lines=1)
        assert run.step() == 2
        assert run.line_sequence == [0, 2]
        assert run.state is OptimizerState.DONE


class TestOptimization:
    def test_sequence_rules(self, gradient_buffer):
        run = optimize_string_art(**_kwargs(gradient_buffer, lines=60))
        seq = run.line_sequence
        assert seq[0] == 0
        assert len(seq) == 61
        for a, b in zip(seq, seq[1:]):
            assert a != b
            assert calculate_min_pin_distance(a, b, 36) >= 3
        assert run.state is OptimizerState.DONE

    def test_no_repeat_within_window(self, gradient_buffer):
        run = optimize_string_art(**_kwargs(gradient_buffer, lines=60))
        chosen = run.line_sequence[1:]
        for i, pin in enumerate(chosen):
            assert pin not in chosen[max(0, i - 20):i]

    def test_error_matrix_stays_in_range(self, gradient_buffer):
        kwargs = _kwargs(gradient_buffer, lines=80, weight=200)
        run = optimize_string_art(**kwargs)
        assert run.error_matrix.min() >= 0
        assert run.error_matrix.max() <= 255

    def test_deterministic(self, gradient_buffer):
        a = optimize_string_art(**_kwargs(gradient_buffer, lines=40))
        b = optimize_string_art(**_kwargs(gradient_buffer, lines=40))
        assert a.line_sequence == b.line_sequence
        assert a.thread_length == b.thread_length

    def test_thread_length_uses_scale_factor(self, gradient_buffer):
        run = optimize_string_art(**_kwargs(gradient_buffer, lines=10, scale_factor=2.0))
        pins = run.pin_coordinates
        expected = sum(
            np.hypot(pins[b][0] - pins[a][0], pins[b][1] - pins[a][1])
            for a, b in zip(run.line_sequence, run.line_sequence[1:])
        ) * 2.0
        assert run.thread_length == pytest.approx(expected)

    def test_stalls_when_window_covers_every_pin(self):
        buffer = np.full((20, 20), 255, dtype=np.uint8)
        run = make_run(buffer, n_pins=4, min_distance=1, lines=100)
        events = list(iter_optimization(run))
        assert run.state is OptimizerState.STALLED
        assert run.line_sequence == [0, 1, 2, 3, 0]
        assert run.lines_drawn == 4
        assert events[0].progress.lines_drawn == 1


class TestProgress:
    def test_event_schedule(self, gradient_buffer):
        seen = []
        optimize_string_art(
            **_kwargs(gradient_buffer, lines=25),
            on_progress=lambda progress, seq, pins: seen.append((progress, list(seq))),
        )
        assert [p.lines_drawn for p, _ in seen] == [1, 11, 21, 25]
        assert seen[-1][0].percent_complete == 100
        for progress, seq in seen:
            assert len(seq) == progress.lines_drawn + 1
            assert seq[-1] == progress.next_pin
            assert seq[-2] == progress.current_pin

    def test_abandon_mid_run(self, gradient_buffer):
        run = make_run(gradient_buffer, lines=50)
        events = iter_optimization(run)
        first = next(events)
        events.close()
        assert first.progress.lines_drawn == 1
        assert run.lines_drawn == 1
        assert run.state is OptimizerState.STEPPING

    def test_step_after_done(self, gradient_buffer):
        run = make_run(gradient_buffer, lines=2)
        list(iter_optimization(run))
        assert run.finished
        assert run.step() is None
        assert run.lines_drawn == 2


def _kwargs(pixel_buffer, lines, n_pins=36, min_distance=3, weight=20, scale_factor=1.0):
    pins = calculate_circular_pins(n_pins, pixel_buffer.shape[0])
    return dict(
        error_matrix=create_error_matrix(pixel_buffer),
        pin_coordinates=pins,
        line_cache=precalculate_line_cache(pins, min_distance),
        number_of_lines=lines,
        line_weight=weight,
        min_distance=min_distance,
        scale_factor=scale_factor,
    )

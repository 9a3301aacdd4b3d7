import os
from concurrent.futures import ThreadPoolExecutor

import imageio.v2 as imageio
import numpy as np
import pytest

from string_art.render import (
    list_frames,
    make_mp4_from_frames,
    opacity_for_weight,
    render_canvas,
    save_canvas_png,
    save_frame,
)

PINS = [(0, 0), (49, 0), (49, 49), (0, 49)]


class TestRenderCanvas:
    def test_no_lines_is_white(self):
        canvas = render_canvas([0], PINS, 50, 50)
        assert canvas.shape == (100, 100)
        assert (canvas == 1.0).all()

    def test_lines_darken(self):
        canvas = render_canvas([0, 2, 1], PINS, 50, 50, opacity=0.5)
        assert canvas.min() < 1.0
        assert canvas.min() >= 0.0
        assert canvas[50, 50] < 1.0

    def test_full_opacity_reaches_black(self):
        canvas = render_canvas([0, 1], PINS, 50, 50, scale=1, opacity=1.0)
        assert canvas[0, 10] < 0.05

    def test_up_to_limits_lines(self):
        full = render_canvas([0, 2, 1], PINS, 50, 50)
        assert (render_canvas([0, 2, 1], PINS, 50, 50, up_to=0) == 1.0).all()
        assert not np.array_equal(render_canvas([0, 2, 1], PINS, 50, 50, up_to=1), full)

    def test_rectangular_canvas(self):
        canvas = render_canvas([0, 1], [(0, 0), (79, 39)], 80, 40, scale=1)
        assert canvas.shape == (40, 80)

    def test_fractional_pins_round_half_up(self):
        canvas = render_canvas([0, 1], [(0.5, 0.5), (0.5, 9.5)], 10, 10, scale=1, opacity=1.0)
        assert canvas[5, 1] < 0.05
        assert canvas[5, 0] > 0.95

    @pytest.mark.parametrize("weight,expected", [(0, 0.0), (51, 0.2), (255, 1.0), (400, 1.0)])
    def test_opacity_for_weight(self, weight, expected):
        assert opacity_for_weight(weight) == pytest.approx(expected)


class TestFrames:
    def test_save_png(self, tmp_path):
        path = save_canvas_png(np.ones((40, 80)), tmp_path / "out.png", dpi=20)
        assert os.path.getsize(path) > 0

    def test_concurrent_saves_do_not_mix(self, tmp_path):
        canvases = {"white": np.ones((40, 40)), "black": np.zeros((40, 40))}
        jobs = [(name, tmp_path / f"{name}_{i}.png") for i in range(8) for name in canvases]

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(lambda job: save_canvas_png(canvases[job[0]], job[1], dpi=20), jobs))

        for name, path in jobs:
            mean = imageio.imread(path)[..., :3].mean()
            if name == "white":
                assert mean > 200, path
            else:
                assert mean < 55, path

    def test_frames_are_listed_in_order(self, tmp_path):
        canvas = render_canvas([0, 2], PINS, 50, 50)
        for idx in (200, 1, 30):
            save_frame(canvas, tmp_path / "frames", idx, dpi=20)
        (tmp_path / "frames" / "notes.txt").write_text("x")
        names = [os.path.basename(p) for p in list_frames(tmp_path / "frames")]
        assert names == ["frame_00001.png", "frame_00030.png", "frame_00200.png"]

    def test_missing_dir(self, tmp_path):
        assert list_frames(tmp_path / "nope") == []
        assert make_mp4_from_frames(tmp_path / "nope", tmp_path / "out.mp4") is None

    def test_mp4(self, tmp_path):
        pytest.importorskip("imageio_ffmpeg")
        frames = tmp_path / "frames"
        for idx in range(3):
            canvas = render_canvas([0, 2, 1, 3][: idx + 2], PINS, 50, 50)
            save_frame(canvas, frames, idx, dpi=20)
        out = make_mp4_from_frames(frames, tmp_path / "timelapse.mp4", fps=5)
        assert out is not None
        assert os.path.getsize(out) > 0

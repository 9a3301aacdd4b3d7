import csv
import io

import imageio.v2 as imageio
import numpy as np
import pytest
from fastapi.testclient import TestClient

import app as api
from string_art.engine import generate_string_art
from string_art.sequence_codec import compress_sequence, decompress_sequence

SMALL_FORM = {"numberOfPins": "36", "numberOfLines": "30", "minDistance": "3", "imgSize": "100"}


class ImmediateExecutor:
    def submit(self, fn, *args):
        fn(*args)


def png_bytes(image, tmp_path) -> bytes:
    path = tmp_path / "upload.png"
    imageio.imwrite(path, image)
    return path.read_bytes()


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(api, "JOBS_ROOT", str(tmp_path / "jobs"))
    monkeypatch.setattr(api, "EXECUTOR", ImmediateExecutor())
    monkeypatch.setattr(api, "SNAPSHOT_EVERY", 0)
    monkeypatch.setattr(api, "PUBLIC_BASE_URL", None)
    return TestClient(api.app)


class TestHealth:
    def test_root(self, client):
        body = client.get("/").json()
        assert body["status"] == "ok"
        assert body["publicBaseUrl"] == "(relative)"


class TestUpload:
    def test_full_job(self, client, tmp_path, portrait):
        resp = client.post(
            "/redeem-upload",
            files={"file": ("photo.png", png_bytes(portrait, tmp_path), "image/png")},
            data=SMALL_FORM,
        )
        assert resp.status_code == 200
        job_id = resp.json()["jobId"]

        status = client.get(f"/status/{job_id}").json()
        assert status["status"] == "done", status["error"]
        assert status["linesDrawn"] == 30
        assert status["totalLines"] == 30
        assert status["percentComplete"] == 100
        assert status["threadLength"] > 0
        assert not status["stalled"]
        assert status["resultImageUrl"] == f"/files/{job_id}/{api.RESULT_PNG}"
        assert status["resultTimelapseUrl"] is None

        for name in (api.RESULT_PNG, api.RESULT_PDF, api.RESULT_CSV, api.RESULT_TXT):
            assert client.get(f"/files/{job_id}/{name}").status_code == 200

        rows = list(csv.reader(io.StringIO(client.get(f"/files/{job_id}/{api.RESULT_CSV}").text)))
        assert rows[0] == ["from_pin", "to_pin"]
        assert len(rows) == 31

        shared = client.get(f"/share/{status['shareCode']}").json()
        assert shared["numberOfPins"] == 36
        assert shared["shape"] == "circle"
        assert shared["width"] == 500
        assert shared["sequence"][0] == 0
        assert [int(r[1]) for r in rows[1:]] == shared["sequence"][1:]

    def test_small_image_fails_job(self, client, tmp_path):
        tiny = np.zeros((10, 10, 3), dtype=np.uint8)
        resp = client.post(
            "/redeem-upload",
            files={"file": ("tiny.png", png_bytes(tiny, tmp_path), "image/png")},
            data=SMALL_FORM,
        )
        status = client.get(f"/status/{resp.json()['jobId']}").json()
        assert status["status"] == "error"
        assert "at least" in status["error"]

    def test_rejects_non_image(self, client):
        resp = client.post(
            "/redeem-upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            data=SMALL_FORM,
        )
        assert resp.status_code == 400

    def test_rejects_invalid_parameters(self, client, tmp_path, portrait):
        resp = client.post(
            "/redeem-upload",
            files={"file": ("photo.png", png_bytes(portrait, tmp_path), "image/png")},
            data={**SMALL_FORM, "numberOfPins": "2"},
        )
        assert resp.status_code == 422
        assert "Number of pins must be at least 3" in resp.json()["detail"]

    def test_fractional_lines_rejected(self, client, tmp_path, portrait):
        resp = client.post(
            "/redeem-upload",
            files={"file": ("photo.png", png_bytes(portrait, tmp_path), "image/png")},
            data={**SMALL_FORM, "numberOfLines": "10.5"},
        )
        assert resp.status_code == 422

    @pytest.mark.parametrize("field,message", [
        ("lineWeight", "Line weight must be a number"),
        ("numberOfPins", "Number of pins must be a number"),
        ("hoopDiameter", "Hoop diameter must be a number"),
        ("threadThickness", "Thread thickness must be a number"),
    ])
    @pytest.mark.parametrize("value", ["nan", "inf"])
    def test_non_finite_form_values_rejected(self, client, tmp_path, portrait, field, message, value):
        resp = client.post(
            "/redeem-upload",
            files={"file": ("photo.png", png_bytes(portrait, tmp_path), "image/png")},
            data={**SMALL_FORM, field: value},
        )
        assert resp.status_code == 422
        assert message in resp.json()["detail"]

    def test_yarn_spec_form_field(self, client, tmp_path, portrait):
        resp = client.post(
            "/redeem-upload",
            files={"file": ("photo.png", png_bytes(portrait, tmp_path), "image/png")},
            data={**SMALL_FORM, "yarnSpec": '{"type": "diameter_mm", "diameterMM": 0.3}'},
        )
        assert resp.status_code == 200
        status = client.get(f"/status/{resp.json()['jobId']}").json()
        assert status["status"] == "done", status["error"]

    @pytest.mark.parametrize("raw", ["{not json", '{"type": "furlongs"}'])
    def test_bad_yarn_spec_form_field(self, client, tmp_path, portrait, raw):
        resp = client.post(
            "/redeem-upload",
            files={"file": ("photo.png", png_bytes(portrait, tmp_path), "image/png")},
            data={**SMALL_FORM, "yarnSpec": raw},
        )
        assert resp.status_code == 422
        assert all(msg.startswith("Invalid yarnSpec") for msg in resp.json()["detail"])


class FakeResponse:
    def __init__(self, content, content_type="image/png"):
        self.content = content
        self.headers = {"content-type": content_type}

    def raise_for_status(self):
        pass


class TestRedeemUrl:
    def test_downloads_and_runs(self, client, tmp_path, monkeypatch, portrait):
        data = png_bytes(portrait, tmp_path)
        calls = []

        def fake_get(url, timeout=None):
            calls.append(url)
            return FakeResponse(data)

        monkeypatch.setattr(api.requests, "get", fake_get)
        resp = client.post("/redeem", json={
            "imageUrl": "https://example.com/photo.png",
            "numberOfPins": 36,
            "numberOfLines": 20,
            "minDistance": 3,
            "imgSize": 100,
            "yarnSpec": {"type": "diameter_mm", "diameterMM": 0.3},
        })
        assert resp.status_code == 200
        assert calls == ["https://example.com/photo.png"]

        status = client.get(f"/status/{resp.json()['jobId']}").json()
        assert status["status"] == "done", status["error"]
        assert status["linesDrawn"] == 20

    def test_non_image_url_fails_job(self, client, monkeypatch):
        monkeypatch.setattr(api.requests, "get", lambda url, timeout=None: FakeResponse(b"<html>", "text/html"))
        resp = client.post("/redeem", json={"imageUrl": "https://example.com/page"})
        status = client.get(f"/status/{resp.json()['jobId']}").json()
        assert status["status"] == "error"
        assert "content-type" in status["error"]

    def test_bad_url(self, client):
        assert client.post("/redeem", json={"imageUrl": "not a url"}).status_code == 422


class TestLookups:
    def test_unknown_status(self, client):
        assert client.get("/status/doesnotexist").status_code == 404

    def test_unknown_file(self, client):
        assert client.get("/files/doesnotexist/result.png").status_code == 404

    def test_share_decode(self, client):
        code = compress_sequence([0, 40, 80], 200, "rectangle", 300, 200)
        body = client.get(f"/share/{code}").json()
        assert body == {
            "sequence": [0, 40, 80],
            "numberOfPins": 200,
            "shape": "rectangle",
            "width": 300,
            "height": 200,
        }

    def test_share_garbage(self, client):
        assert client.get("/share/bm90IGd6aXA").status_code == 400

    def test_share_code_rounds_half_up(self, portrait):
        result = generate_string_art(portrait, {
            "shape": "rectangle", "width": 200.5, "height": 100.5,
            "number_of_pins": 40, "number_of_lines": 5, "min_distance": 3, "img_size": 100,
        })
        shared = decompress_sequence(api.share_code_for(result))
        assert (shared.width, shared.height) == (201, 101)
        assert shared.sequence == result.line_sequence

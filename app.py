import os
import json
import uuid
import logging
from typing import Optional, Literal, List
from concurrent.futures import ThreadPoolExecutor

import requests
from fastapi import FastAPI, HTTPException, UploadFile, File, Form
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, HttpUrl, ValidationError
from starlette.responses import FileResponse

from string_art.arrays import round_half_up
from string_art.engine import (
    StringArtResult,
    generate_string_art,
    validate_string_art_parameters,
)
from string_art.export import build_pdf_report, write_lines_csv, write_sequence_txt
from string_art.image_processor import load_image, validate_image_dimensions
from string_art.optimizer import OptimizationProgress
from string_art.render import (
    make_mp4_from_frames,
    render_canvas,
    render_result,
    save_canvas_png,
    save_frame,
)
from string_art.sequence_codec import SequenceDecodeError, compress_sequence, decompress_sequence

# -------------------------------------------------------------------
# Basic config
# -------------------------------------------------------------------

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL")  # e.g. https://string-art-api.onrender.com
JOBS_ROOT = os.getenv("JOBS_ROOT", "jobs")
SNAPSHOT_EVERY = int(os.getenv("SNAPSHOT_EVERY", "200"))  # lines between timelapse frames
MAX_WORKERS = int(os.getenv("MAX_WORKERS", "2"))
DOWNLOAD_TIMEOUT = float(os.getenv("DOWNLOAD_TIMEOUT", "30"))

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("string_art.app")

os.makedirs(JOBS_ROOT, exist_ok=True)

RESULT_PNG = "string_art_result.png"
RESULT_PDF = "string_art_instructions.pdf"
RESULT_CSV = "string_art_lines.csv"
RESULT_TXT = "string_art_sequence.txt"
RESULT_MP4 = "string_art_timelapse.mp4"

app = FastAPI(title="String Art API", version="2.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# A tiny thread pool so jobs run in the background
EXECUTOR = ThreadPoolExecutor(max_workers=MAX_WORKERS)


# -------------------------------------------------------------------
# Pydantic models
# -------------------------------------------------------------------

class YarnSpecBody(BaseModel):
    type: Literal["ticket", "nm", "tex", "dtex", "denier", "length_weight", "diameter_mm"]
    material: Literal["polyester", "cotton", "nylon", "unknown"] = "polyester"
    k: Optional[float] = None
    overrideDiameterMM: Optional[float] = None
    ticketNo: Optional[float] = None
    nm: Optional[float] = None
    ply: Optional[int] = None
    tex: Optional[float] = None
    dtex: Optional[float] = None
    denier: Optional[float] = None
    meters: Optional[float] = None
    grams: Optional[float] = None
    diameterMM: Optional[float] = None

    def to_engine(self) -> dict:
        return {
            "type": self.type,
            "material": self.material,
            "k": self.k,
            "override_diameter_mm": self.overrideDiameterMM,
            "ticket_no": self.ticketNo,
            "nm": self.nm,
            "ply": self.ply,
            "tex": self.tex,
            "dtex": self.dtex,
            "denier": self.denier,
            "meters": self.meters,
            "grams": self.grams,
            "diameter_mm": self.diameterMM,
        }


class GenerationOptions(BaseModel):
    shape: Optional[str] = None
    numberOfPins: Optional[float] = None
    numberOfLines: Optional[float] = None
    lineWeight: Optional[float] = None
    minDistance: Optional[float] = None
    imgSize: Optional[float] = None
    hoopDiameter: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    threadThickness: Optional[float] = None
    yarnSpec: Optional[YarnSpecBody] = None

    def to_engine(self) -> dict:
        params = {
            "shape": self.shape,
            "number_of_pins": _as_int(self.numberOfPins),
            "number_of_lines": _as_int(self.numberOfLines),
            "line_weight": _as_int(self.lineWeight),
            "min_distance": _as_int(self.minDistance),
            "img_size": _as_int(self.imgSize),
            "hoop_diameter": self.hoopDiameter,
            "width": self.width,
            "height": self.height,
            "thread_thickness": self.threadThickness,
            "yarn_spec": self.yarnSpec.to_engine() if self.yarnSpec else None,
        }
        return {k: v for k, v in params.items() if v is not None}


class RedeemBody(GenerationOptions):
    imageUrl: HttpUrl


class JobStatus(BaseModel):
    jobId: str
    status: Literal["queued", "processing", "done", "error"]
    error: Optional[str] = None
    linesDrawn: int = 0
    totalLines: Optional[int] = None
    percentComplete: float = 0.0
    threadLength: Optional[float] = None
    stalled: bool = False
    shareCode: Optional[str] = None
    resultImageUrl: Optional[str] = None
    resultPdfUrl: Optional[str] = None
    resultCsvUrl: Optional[str] = None
    resultSequenceUrl: Optional[str] = None
    resultTimelapseUrl: Optional[str] = None


class SharedSequenceResponse(BaseModel):
    sequence: List[int]
    numberOfPins: int
    shape: Literal["circle", "rectangle"]
    width: int
    height: int


def _as_int(value):
    # keep non-integers as floats so validation can report them
    if value is None or not float(value).is_integer():
        return value
    return int(value)


def parse_yarn_form(raw: Optional[str]) -> Optional[YarnSpecBody]:
    """yarnSpec arrives as a JSON string in multipart forms."""
    if not raw:
        return None
    try:
        return YarnSpecBody.model_validate_json(raw)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=[f"Invalid yarnSpec: {err['msg']}" for err in e.errors()],
        )


def check_options(options: GenerationOptions) -> dict:
    params = options.to_engine()
    validation = validate_string_art_parameters(params)
    if not validation.is_valid:
        raise HTTPException(status_code=422, detail=validation.errors)
    return params


# -------------------------------------------------------------------
# Helper functions for status JSON per job
# -------------------------------------------------------------------

def job_dir(job_id: str) -> str:
    return os.path.join(JOBS_ROOT, job_id)


def status_path(job_id: str) -> str:
    return os.path.join(job_dir(job_id), "status.json")


def read_status(job_id: str) -> JobStatus:
    path = status_path(job_id)
    if not os.path.exists(path):
        raise HTTPException(status_code=404, detail="Unknown job_id")
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return JobStatus(**data)


def write_status(status: JobStatus) -> None:
    jd = job_dir(status.jobId)
    os.makedirs(jd, exist_ok=True)
    path = status_path(status.jobId)
    tmp_path = path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(status.model_dump(), f)
    os.replace(tmp_path, path)


def build_file_url(job_id: str, filename: str) -> str:
    if PUBLIC_BASE_URL:
        base = PUBLIC_BASE_URL.rstrip("/")
        return f"{base}/files/{job_id}/{filename}"
    # Fallback: relative path
    return f"/files/{job_id}/{filename}"


def download_image(url: str, dest_path: str) -> None:
    response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
    response.raise_for_status()
    content_type = response.headers.get("content-type", "")
    if content_type and not content_type.startswith("image/"):
        raise ValueError(f"URL did not return an image (content-type {content_type})")
    with open(dest_path, "wb") as out:
        out.write(response.content)


def share_code_for(result: StringArtResult) -> str:
    params = result.parameters
    if params.shape == "rectangle" and params.width and params.height:
        width, height = round_half_up(params.width), round_half_up(params.height)
    else:
        width = height = round_half_up(params.hoop_diameter)
    return compress_sequence(
        result.line_sequence, len(result.pin_coordinates), params.shape, width, height
    )


# -------------------------------------------------------------------
# Core pipeline: string art + timelapse + CSV/TXT/PDF
# -------------------------------------------------------------------

def generate_string_art_assets(
    input_path: str,
    job_id: str,
    params: Optional[dict] = None,
    image_url: Optional[str] = None,
) -> None:
    """
    Runs the full pipeline for a given job:
    - download the image (URL jobs)
    - generate the pin sequence, saving timelapse frames along the way
    - render the final PNG
    - write CSV, TXT and PDF instructions and the MP4 timelapse
    Updates status.json as it goes.
    """
    jd = job_dir(job_id)
    os.makedirs(jd, exist_ok=True)

    status = JobStatus(jobId=job_id, status="processing")
    write_status(status)

    logger.info("[JOB %s] Starting pipeline, input_path=%s", job_id, input_path)

    try:
        if image_url is not None:
            download_image(image_url, input_path)

        image = load_image(input_path)
        checks = validate_image_dimensions(image)
        if not checks.is_valid:
            raise ValueError("; ".join(checks.errors))

        frames_dir = os.path.join(jd, "frames")
        last_frame = [-1]

        def on_progress(progress: OptimizationProgress, sequence, pins):
            status.linesDrawn = progress.lines_drawn
            status.totalLines = progress.total_lines
            status.percentComplete = round(progress.percent_complete, 2)
            status.threadLength = progress.thread_length
            write_status(status)

            if SNAPSHOT_EVERY and SNAPSHOT_EVERY > 0:
                frame_idx = progress.lines_drawn // SNAPSHOT_EVERY
                if frame_idx > last_frame[0]:
                    last_frame[0] = frame_idx
                    pixel_w = max(x for x, _ in pins) + 1
                    pixel_h = max(y for _, y in pins) + 1
                    canvas = render_canvas(sequence, pins, pixel_w, pixel_h)
                    save_frame(canvas, frames_dir, progress.lines_drawn)

        result = generate_string_art(image, params or {}, on_progress=on_progress)

        # ---------------------
        # Save final PNG
        # ---------------------
        canvas = render_result(result)
        save_canvas_png(canvas, os.path.join(jd, RESULT_PNG))

        # ---------------------
        # Instructions
        # ---------------------
        write_lines_csv(result.line_sequence, os.path.join(jd, RESULT_CSV))
        write_sequence_txt(result, os.path.join(jd, RESULT_TXT))
        build_pdf_report(
            result,
            os.path.join(jd, RESULT_PDF),
            preview_png=os.path.join(jd, RESULT_PNG),
        )

        # ---------------------
        # Make MP4 timelapse
        # ---------------------
        if SNAPSHOT_EVERY and SNAPSHOT_EVERY > 0:
            save_frame(canvas, frames_dir, result.lines_drawn + 1)
            mp4 = make_mp4_from_frames(frames_dir, os.path.join(jd, RESULT_MP4))
            if mp4:
                status.resultTimelapseUrl = build_file_url(job_id, RESULT_MP4)

        # Done
        status.status = "done"
        status.linesDrawn = result.lines_drawn
        status.totalLines = result.parameters.number_of_lines
        status.percentComplete = round(result.lines_drawn / result.parameters.number_of_lines * 100, 2)
        status.threadLength = result.total_thread_length
        status.stalled = result.stalled
        status.shareCode = share_code_for(result)
        status.resultImageUrl = build_file_url(job_id, RESULT_PNG)
        status.resultPdfUrl = build_file_url(job_id, RESULT_PDF)
        status.resultCsvUrl = build_file_url(job_id, RESULT_CSV)
        status.resultSequenceUrl = build_file_url(job_id, RESULT_TXT)
        write_status(status)

        if result.stalled:
            logger.warning(
                "[JOB %s] Stopped early after %d of %d lines",
                job_id, result.lines_drawn, result.parameters.number_of_lines,
            )
        logger.info("[JOB %s] Finished OK", job_id)

    except Exception as e:
        status.status = "error"
        status.error = str(e)
        write_status(status)
        logger.exception("[JOB %s] ERROR: %r", job_id, e)


IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp", ".gif", ".tif", ".tiff", ".webp"}


def input_filename(name: Optional[str]) -> str:
    ext = os.path.splitext(name or "")[1].lower()
    return "input" + (ext if ext in IMAGE_EXTENSIONS else ".jpg")


def create_job() -> str:
    job_id = uuid.uuid4().hex[:12]
    os.makedirs(job_dir(job_id), exist_ok=True)
    return job_id


# -------------------------------------------------------------------
# API endpoints
# -------------------------------------------------------------------

@app.get("/")
def root():
    return {
        "status": "ok",
        "publicBaseUrl": PUBLIC_BASE_URL or "(relative)",
        "filesRoot": JOBS_ROOT,
    }


@app.post("/redeem-upload", response_model=JobStatus)
async def redeem_upload(
    file: UploadFile = File(...),
    shape: Optional[str] = Form(None),
    numberOfPins: Optional[float] = Form(None),
    numberOfLines: Optional[float] = Form(None),
    lineWeight: Optional[float] = Form(None),
    minDistance: Optional[float] = Form(None),
    imgSize: Optional[float] = Form(None),
    hoopDiameter: Optional[float] = Form(None),
    width: Optional[float] = Form(None),
    height: Optional[float] = Form(None),
    threadThickness: Optional[float] = Form(None),
    yarnSpec: Optional[str] = Form(None),
):
    """
    Start a job from an uploaded image.
    Always writes a status.json file so /status/{job_id} never 404s.
    """
    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Uploaded file must be an image")

    params = check_options(GenerationOptions(
        shape=shape,
        numberOfPins=numberOfPins,
        numberOfLines=numberOfLines,
        lineWeight=lineWeight,
        minDistance=minDistance,
        imgSize=imgSize,
        hoopDiameter=hoopDiameter,
        width=width,
        height=height,
        threadThickness=threadThickness,
        yarnSpec=parse_yarn_form(yarnSpec),
    ))

    job_id = create_job()
    input_path = os.path.join(job_dir(job_id), input_filename(file.filename))
    try:
        contents = await file.read()
        with open(input_path, "wb") as out:
            out.write(contents)
    except OSError as e:
        # If saving fails, still create a status.json with error
        status = JobStatus(jobId=job_id, status="error", error=f"Failed to save upload: {e}")
        write_status(status)
        return status

    status = JobStatus(jobId=job_id, status="queued")
    write_status(status)

    EXECUTOR.submit(generate_string_art_assets, input_path, job_id, params)

    return status


@app.post("/redeem", response_model=JobStatus)
def redeem(body: RedeemBody):
    """Start a job from an image URL; the download happens in the job."""
    params = check_options(body)

    job_id = create_job()
    input_path = os.path.join(job_dir(job_id), input_filename(body.imageUrl.path))

    status = JobStatus(jobId=job_id, status="queued")
    write_status(status)

    EXECUTOR.submit(generate_string_art_assets, input_path, job_id, params, str(body.imageUrl))

    return status


@app.get("/status/{job_id}", response_model=JobStatus)
def get_status(job_id: str):
    status = read_status(job_id)

    # If already done, ensure URLs are absolute
    if status.status == "done":
        if status.resultImageUrl is None:
            status.resultImageUrl = build_file_url(job_id, RESULT_PNG)
        if status.resultPdfUrl is None:
            status.resultPdfUrl = build_file_url(job_id, RESULT_PDF)
        if status.resultCsvUrl is None:
            status.resultCsvUrl = build_file_url(job_id, RESULT_CSV)
        if status.resultSequenceUrl is None:
            status.resultSequenceUrl = build_file_url(job_id, RESULT_TXT)

    return status


@app.get("/files/{job_id}/{filename}")
def get_file(job_id: str, filename: str):
    if os.path.basename(filename) != filename:
        raise HTTPException(status_code=404, detail="File not found")
    path = os.path.join(job_dir(job_id), filename)
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path)


@app.get("/share/{code}", response_model=SharedSequenceResponse)
def get_shared_sequence(code: str):
    try:
        shared = decompress_sequence(code)
    except SequenceDecodeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SharedSequenceResponse(
        sequence=shared.sequence,
        numberOfPins=shared.number_of_pins,
        shape=shared.shape,
        width=shared.width,
        height=shared.height,
    )

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
import uvicorn

from .compose import TEMPLATES_DIR
from .env import read_env, read_env_int
from .errors import PreviewError
from .preview import build_preview, render_error_page
from .workspace import discard_work_dir, new_work_dir

UPLOAD_NAME = "upload.epub"
HOST_ENV = "QUICKLOOK_HOST"
PORT_ENV = "QUICKLOOK_PORT"
DEFAULT_PORT = 5670

app = FastAPI()
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
logger = logging.getLogger("quicklook.web")


def _no_store_headers() -> dict[str, str]:
    return {
        "Cache-Control": "no-store, max-age=0",
        "CDN-Cache-Control": "no-store",
        "Pragma": "no-cache",
        "Expires": "0",
    }


def _preview_headers() -> dict[str, str]:
    # Uploaded chapter markup must not run scripts on this origin.
    return {**_no_store_headers(), "Content-Security-Policy": "script-src 'none'"}


async def _stream_upload_to_path(
    upload_file: UploadFile, destination: Path, *, chunk_size: int = 1024 * 1024
) -> int:
    destination.parent.mkdir(parents=True, exist_ok=True)
    total = 0
    with destination.open("wb") as out:
        while True:
            chunk = await upload_file.read(chunk_size)
            if not chunk:
                break
            out.write(chunk)
            total += len(chunk)
    return total


@app.get("/", response_class=HTMLResponse)
async def index(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "index.html", {"title": "EPUB Quick Look"})


@app.get("/healthz")
async def healthz() -> dict[str, bool]:
    return {"ok": True}


@app.post("/preview", response_class=HTMLResponse)
async def preview(request: Request, file: Optional[UploadFile] = File(None)) -> HTMLResponse:
    if file is None:
        raise HTTPException(status_code=400, detail="Missing file")

    staging = new_work_dir()
    upload_path = staging / UPLOAD_NAME
    size = await _stream_upload_to_path(file, upload_path)
    if size == 0:
        discard_work_dir(staging)
        raise HTTPException(status_code=400, detail="Empty file")

    try:
        result = await run_in_threadpool(build_preview, upload_path)
    except PreviewError as exc:
        logger.warning("preview failed for %s: %s", file.filename or UPLOAD_NAME, exc)
        return HTMLResponse(render_error_page(exc), status_code=422, headers=_preview_headers())
    finally:
        discard_work_dir(staging)
    # The composed HTML is self-contained text; file:// resources are not reachable over HTTP.
    discard_work_dir(result.work_dir)
    return HTMLResponse(result.document.html, headers=_preview_headers())


def run() -> None:
    host = read_env(HOST_ENV, "127.0.0.1") or "127.0.0.1"
    port = read_env_int(PORT_ENV, DEFAULT_PORT)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=host, port=port)

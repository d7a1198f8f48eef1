from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from .errors import InvalidFileType, NoPendingUpload, RunSuperseded
from .events import Notification, PipelineState
from .pipeline import PipelineController, ScanResult
from .stats_store import ScanStats
from .upload_gate import ACCEPTED_EXTENSIONS

router = APIRouter(prefix="/api")


# ---------- MODELS ----------
class NotificationOut(BaseModel):
    level: str
    message: str
    code: Optional[str] = None

    @classmethod
    def from_event(cls, note: Optional[Notification]) -> Optional["NotificationOut"]:
        if note is None:
            return None
        return cls(level=note.level, message=note.message, code=note.code)


class UploadResponse(BaseModel):
    state: PipelineState
    notification: Optional[NotificationOut] = None
    result: Optional[ScanResult] = None


class StatusResponse(BaseModel):
    state: PipelineState
    progress: int
    phase: str
    auto_start: bool
    accepted_extensions: List[str]
    notification: Optional[NotificationOut] = None
    result: Optional[ScanResult] = None
    stats: ScanStats


# ---------- DEPENDENCIES ----------
def get_controller(request: Request) -> PipelineController:
    return request.app.state.controller


async def _read_upload(upload_file: UploadFile):
    data = await upload_file.read()
    return upload_file.filename, upload_file.content_type, data


def _submit(controller: PipelineController, filename, content_type, data, start=None) -> Optional[ScanResult]:
    try:
        return controller.submit(filename, content_type, data, start=start)
    except InvalidFileType as exc:
        raise HTTPException(status_code=415, detail=exc.message)
    except (RunSuperseded, NoPendingUpload) as exc:
        raise HTTPException(status_code=409, detail=exc.message)


# ---------- API ROUTES ----------
@router.post("/identify", response_model=ScanResult)
async def identify_audio(
    upload_file: UploadFile = File(...),
    controller: PipelineController = Depends(get_controller),
) -> ScanResult:
    """Accept an audio clip and run the whole pipeline on it, whatever the mode."""
    filename, content_type, data = await _read_upload(upload_file)
    return await run_in_threadpool(_submit, controller, filename, content_type, data, True)


@router.post("/upload", response_model=UploadResponse)
async def upload_audio(
    upload_file: UploadFile = File(...),
    controller: PipelineController = Depends(get_controller),
) -> UploadResponse:
    """Upload gate only; the run starts here when automatic mode is on."""
    filename, content_type, data = await _read_upload(upload_file)
    result = await run_in_threadpool(_submit, controller, filename, content_type, data)
    return UploadResponse(
        state=controller.state,
        notification=NotificationOut.from_event(controller.last_notification),
        result=result,
    )


@router.post("/analyze", response_model=ScanResult)
async def analyze_pending(controller: PipelineController = Depends(get_controller)) -> ScanResult:
    try:
        return await run_in_threadpool(controller.analyze)
    except (RunSuperseded, NoPendingUpload) as exc:
        raise HTTPException(status_code=409, detail=exc.message)


@router.get("/status", response_model=StatusResponse)
def pipeline_status(controller: PipelineController = Depends(get_controller)) -> StatusResponse:
    percent, label = controller.progress.snapshot()
    return StatusResponse(
        state=controller.state,
        progress=percent,
        phase=label,
        auto_start=controller.auto_start,
        accepted_extensions=list(ACCEPTED_EXTENSIONS),
        notification=NotificationOut.from_event(controller.last_notification),
        result=controller.last_result,
        stats=controller.stats,
    )


@router.get("/stats", response_model=ScanStats)
def scan_stats(controller: PipelineController = Depends(get_controller)) -> ScanStats:
    return controller.stats


@router.post("/reset", response_model=StatusResponse)
def reset_pipeline(controller: PipelineController = Depends(get_controller)) -> StatusResponse:
    controller.reset()
    return pipeline_status(controller)


from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from fastapi.responses import JSONResponse

from api.dependencies import get_service
from api.utils import parse_flag, read_uploads, run_sync
from pdftool.core import UNKNOWN_INPUT_NOTE, ConversionService
from pdftool.detection import FileKind
from pdftool.packaging import JOBS_HEADER, content_disposition, package_outputs
from pdftool.utils import split_name

router = APIRouter(tags=["conversion"])


@router.post("/api/convert", summary="Convert a batch of images and PDFs")
async def convert_files(
    files: List[UploadFile] | None = File(None),
    target_format: str = Form("pdf", alias="targetFormat"),
    quality: str | None = Form(None),
    max_dim: str | None = Form(None, alias="maxDim"),
    bundle: str | None = Form(None, alias="zip"),
    compress: str | None = Form(None),
    service: ConversionService = Depends(get_service),
) -> Response:
    inputs = await read_uploads(files or [], service)
    request = service.build_request(
        inputs,
        target=target_format,
        quality=quality,
        max_dimension=max_dim,
        compress_pdf=parse_flag(compress),
        bundle=parse_flag(bundle),
    )
    batch = await run_sync(service.convert, request)
    packaged = package_outputs(batch, bundle=request.bundle)
    return Response(
        content=packaged.body,
        media_type=packaged.content_type,
        headers=packaged.response_headers(),
    )


@router.post("/test-convert", summary="Quick single-file conversion")
async def test_convert(
    file: UploadFile | None = File(None),
    out: str = Form("jpeg"),
    quality: str | None = Form(None),
    max_dim: str | None = Form(None, alias="maxDim"),
    service: ConversionService = Depends(get_service),
) -> Response:
    if file is None:
        return JSONResponse(
            status_code=400, content={"ok": False, "error": 'No file uploaded (field name must be "file")'}
        )
    source = (await read_uploads([file], service))[0]
    request = service.build_request([source], target=out, quality=quality, max_dimension=max_dim)

    outcome = await run_sync(service.preview, source, request)
    if not outcome.artifacts or (outcome.degraded and outcome.note != UNKNOWN_INPUT_NOTE):
        return JSONResponse(status_code=500, content={"ok": False, "error": outcome.note or "conversion failed"})

    first = outcome.artifacts[0]
    headers: dict[str, str] = {}
    filename = first.name
    if source.detect().kind is FileKind.PDF and not request.target.is_document:
        headers["X-Test-Pages"] = str(len(outcome.artifacts))
    elif not outcome.degraded:
        stem, _ = split_name(source.name)
        _, suffix = split_name(first.name)
        filename = f"{stem}_test{suffix}"
    if outcome.job_ids:
        headers[JOBS_HEADER] = ",".join(outcome.job_ids)
    headers["Content-Disposition"] = content_disposition(filename)
    return Response(content=first.data, media_type=first.content_type, headers=headers)


__all__ = ["router"]

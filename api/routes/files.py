"""文件管理相关路由（管理员）。"""
from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile
import aiofiles.os
from aiofiles.tempfile import NamedTemporaryFile

from api.dependencies import get_current_admin, get_stored_file_service
from application.dto import (
    ChunkedUploadAbortRequestDTO,
    ChunkedUploadCompleteRequestDTO,
    ChunkedUploadInitRequestDTO,
    ChunkedUploadSessionDTO,
    ChunkPartDTO,
    ConnectionStatusDTO,
    StoredFileDTO,
    SyncResultDTO,
    ToggleAuthRequestDTO,
)
from application.services.stored_file_service import StoredFileApplicationService
from application.services.token_service import Principal
from core.i18n import t
from core.response import Response as ApiResponse, success_response

router = APIRouter(
    prefix="/admin/files",
    tags=["文件管理"],
)

_COPY_BUFFER = 1024 * 1024


@router.get(
    "",
    summary="文件列表",
    response_model=ApiResponse[list[StoredFileDTO]],
)
async def list_files(
    _: Principal = Depends(get_current_admin),
    service: StoredFileApplicationService = Depends(get_stored_file_service),
):
    return success_response(await service.list_files())


async def spool_to_tempfile(file: UploadFile) -> tuple[str, int]:
    """把上传内容落到临时文件，返回 (路径, 字节数)；复制中途失败时删除临时文件。"""
    size = 0
    async with NamedTemporaryFile("wb", delete=False) as tmp:
        try:
            while True:
                chunk = await file.read(_COPY_BUFFER)
                if not chunk:
                    break
                size += len(chunk)
                await tmp.write(chunk)
        except BaseException:
            await tmp.close()
            await aiofiles.os.remove(tmp.name)
            raise
    return tmp.name, size


@router.post(
    "/upload",
    summary="上传文件",
    response_model=ApiResponse[StoredFileDTO],
)
async def upload_file(
    file: UploadFile = File(...),
    admin: Principal = Depends(get_current_admin),
    service: StoredFileApplicationService = Depends(get_stored_file_service),
):
    """由应用服务器中转上传；先落临时文件，大文件自动走分片上传。"""
    tmp_path, size = await spool_to_tempfile(file)
    try:
        dto = await service.upload_file(
            tmp_path,
            file.filename or "upload.bin",
            content_type=file.content_type,
            size=size,
            uploaded_by=admin.user_id,
        )
    finally:
        await aiofiles.os.remove(tmp_path)
    return success_response(dto, message=t("file.uploaded"))


@router.delete(
    "/{file_id}",
    summary="删除文件",
    response_model=ApiResponse[None],
)
async def delete_file(
    file_id: int,
    _: Principal = Depends(get_current_admin),
    service: StoredFileApplicationService = Depends(get_stored_file_service),
):
    await service.delete_file(file_id)
    return success_response(message=t("file.deleted"))


@router.patch(
    "/{file_id}/auth",
    summary="切换访问是否需要登录",
    response_model=ApiResponse[StoredFileDTO],
)
async def toggle_auth(
    file_id: int,
    payload: ToggleAuthRequestDTO,
    _: Principal = Depends(get_current_admin),
    service: StoredFileApplicationService = Depends(get_stored_file_service),
):
    dto = await service.toggle_auth(file_id, payload.requires_auth)
    return success_response(dto, message=t("file.auth.updated"))


@router.post(
    "/sync",
    summary="与存储桶同步",
    response_model=ApiResponse[SyncResultDTO],
)
async def sync_files(
    _: Principal = Depends(get_current_admin),
    service: StoredFileApplicationService = Depends(get_stored_file_service),
):
    result = await service.sync_files()
    return success_response(
        result,
        message=t("sync.completed", added_count=result.added_count, removed_count=result.removed_count),
    )


@router.post(
    "/test-connection",
    summary="测试存储连接",
    response_model=ApiResponse[ConnectionStatusDTO],
)
async def test_connection(
    _: Principal = Depends(get_current_admin),
    service: StoredFileApplicationService = Depends(get_stored_file_service),
):
    return success_response(await service.test_connection(), message=t("storage.connection.ok"))


# ---------------------------------------------------------------------------
# 浏览器分片上传
# ---------------------------------------------------------------------------


@router.post(
    "/chunked/init",
    summary="初始化分片上传",
    response_model=ApiResponse[ChunkedUploadSessionDTO],
)
async def init_chunked_upload(
    payload: ChunkedUploadInitRequestDTO,
    _: Principal = Depends(get_current_admin),
    service: StoredFileApplicationService = Depends(get_stored_file_service),
):
    return success_response(await service.init_chunked_upload(payload.file_name, payload.content_type))


@router.post(
    "/chunked/part",
    summary="上传单个分片",
    response_model=ApiResponse[ChunkPartDTO],
)
async def upload_chunk(
    key: str = Form(...),
    upload_id: str = Form(...),
    part_number: int = Form(..., ge=1, le=10000),
    chunk: UploadFile = File(...),
    _: Principal = Depends(get_current_admin),
    service: StoredFileApplicationService = Depends(get_stored_file_service),
):
    data = await chunk.read()
    return success_response(await service.upload_chunk(key, upload_id, part_number, data))


@router.post(
    "/chunked/complete",
    summary="完成分片上传",
    response_model=ApiResponse[StoredFileDTO],
)
async def complete_chunked_upload(
    payload: ChunkedUploadCompleteRequestDTO,
    admin: Principal = Depends(get_current_admin),
    service: StoredFileApplicationService = Depends(get_stored_file_service),
):
    dto = await service.complete_chunked_upload(
        key=payload.key,
        upload_id=payload.upload_id,
        parts=payload.parts,
        file_name=payload.file_name,
        file_size=payload.file_size,
        content_type=payload.content_type,
        uploaded_by=admin.user_id,
    )
    return success_response(dto, message=t("file.uploaded"))


@router.post(
    "/chunked/abort",
    summary="取消分片上传",
    response_model=ApiResponse[None],
)
async def abort_chunked_upload(
    payload: ChunkedUploadAbortRequestDTO,
    _: Principal = Depends(get_current_admin),
    service: StoredFileApplicationService = Depends(get_stored_file_service),
):
    await service.abort_chunked_upload(payload.key, payload.upload_id)
    return success_response(message=t("storage.multipart.aborted"))

"""
Export API Routes - generated Playwright code, project files, CI configs and reports
"""

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from recorder.codegen import CICDConfigGenerator, PlaywrightCodeGenerator, build_report, spec_filename
from recorder.core import RecordingSessionStore
from recorder.errors import ValidationFailure
from session_api import get_store

router = APIRouter(prefix="/api/export", tags=["export"])

code_generator = PlaywrightCodeGenerator()
cicd_generator = CICDConfigGenerator()

EXPORT_FORMATS = ("json", "file")


def _check_format(format: str):
    if format not in EXPORT_FORMATS:
        raise ValidationFailure(
            f"Unsupported export format: {format}",
            [{"field": "format", "message": f"must be one of {', '.join(EXPORT_FORMATS)}", "type": "enum"}]
        )


def _attachment(content: str, filename: str, media_type: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.get("/{session_id}")
async def export_code(
    session_id: str,
    format: str = "json",
    store: RecordingSessionStore = Depends(get_store)
):
    """Export the generated Playwright test (json payload or file download)"""
    _check_format(format)
    session = await store.get_session(session_id)
    code = code_generator.render(session)
    filename = spec_filename(session.test_name)

    if format == "file":
        return _attachment(code, filename, "text/typescript")

    return {
        "success": True,
        "data": {"code": code, "filename": filename, "language": "typescript"}
    }


@router.get("/{session_id}/suite")
async def export_suite(
    session_id: str,
    platform: str = "github",
    store: RecordingSessionStore = Depends(get_store)
):
    """Export a complete test project: spec, config, package.json and CI pipeline"""
    session = await store.get_session(session_id)
    return {"success": True, "data": code_generator.render_suite(session, cicd_generator, platform)}


@router.get("/{session_id}/cicd/{platform}")
async def export_cicd(
    session_id: str,
    platform: str,
    format: str = "json",
    store: RecordingSessionStore = Depends(get_store)
):
    _check_format(format)
    await store.get_session(session_id)
    config = cicd_generator.generate_config(platform)
    filename = cicd_generator.get_config_filename(platform)

    if format == "file":
        return _attachment(config, filename.rsplit("/", 1)[-1], "text/yaml")

    return {
        "success": True,
        "data": {
            "config": config,
            "filename": filename,
            "platform": cicd_generator.normalize_platform(platform)
        }
    }


@router.get("/{session_id}/config")
async def export_config(session_id: str, store: RecordingSessionStore = Depends(get_store)):
    """Export playwright.config.ts and package.json for a session"""
    session = await store.get_session(session_id)
    return {
        "success": True,
        "data": {
            "playwright.config.ts": code_generator.render_config(session),
            "package.json": code_generator.render_package_json(session.test_name)
        }
    }


@router.get("/{session_id}/report")
async def export_report(session_id: str, store: RecordingSessionStore = Depends(get_store)):
    session = await store.get_session(session_id)
    return {"success": True, "data": build_report(session)}

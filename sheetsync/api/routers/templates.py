"""
Template downloads and field mapping lookups.
"""
from typing import List

from fastapi import APIRouter, HTTPException, Response

from sheetsync.api.dependencies import require_entity_type
from sheetsync.api.schemas.shared import FieldMappingInfo, FieldMappingsResponse, TemplateInfo
from sheetsync.domain.imports.errors import UnsupportedEntityTypeError
from sheetsync.domain.imports.mapper import FieldMapper
from sheetsync.domain.imports.templates import build_template_file, list_templates

router = APIRouter(prefix="/api", tags=["templates"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_mapper = FieldMapper()


@router.get("/templates", response_model=List[TemplateInfo])
async def list_available_templates():
    return [
        TemplateInfo(entity_type=t.entity_type, template_name=t.template_name, columns=list(t.columns))
        for t in list_templates()
    ]


@router.get("/template/{module}")
async def download_template(module: str):
    """Download a workbook whose header row matches the module's columns."""
    try:
        file_name, content = build_template_file(module)
    except UnsupportedEntityTypeError:
        raise HTTPException(status_code=404, detail="Template not found")
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.get("/field-mappings/{module}", response_model=FieldMappingsResponse)
async def get_field_mappings(module: str):
    entity = require_entity_type(module)
    mappings = _mapper.get_mappings(entity.value) or []
    return FieldMappingsResponse(
        entity_type=entity.value,
        mappings=[
            FieldMappingInfo(
                field=mapping.field,
                headers=list(mapping.headers),
                transform=mapping.transform.__name__ if mapping.transform else None,
            )
            for mapping in mappings
        ],
    )

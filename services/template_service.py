"""
Template Service - blank import workbooks with one sample row.

Column headers are each field's primary spreadsheet alias, so a filled-in
template imports without any header mapping.
"""

import io
import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Union

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from services.entity_config import EntityConfig, EntityType, get_entity_config

logger = logging.getLogger(__name__)

MIN_COLUMN_WIDTH = 10
MAX_COLUMN_WIDTH = 50


def template_filename(entity_type: Union[EntityType, str]) -> str:
    """e.g. ``userAppliances`` -> ``user-appliances-import-template.xlsx``"""
    config = get_entity_config(entity_type)
    slug = re.sub(r'(?<!^)(?=[A-Z])', '-', config.entity_type.value).lower()
    return f"{slug}-import-template.xlsx"


def _add_template_sheet(workbook: Workbook, config: EntityConfig, include_sample: bool = True):
    worksheet = workbook.create_sheet(title=config.default_sheet_name)
    headers = config.headers
    worksheet.append(headers)
    for cell in worksheet[1]:
        cell.font = Font(bold=True)

    sample = config.sample_data() if include_sample else {}
    if sample:
        worksheet.append([sample.get(header) for header in headers])

    for index, header in enumerate(headers, 1):
        width = max(len(header), len(str(sample.get(header) or ''))) + 2
        width = min(max(width, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH)
        worksheet.column_dimensions[get_column_letter(index)].width = width

    worksheet.freeze_panes = 'A2'


def build_template(
    entity_types: Optional[Iterable[Union[EntityType, str]]] = None,
    include_sample: bool = True
) -> Workbook:
    """
    Build an import template workbook.

    Args:
        entity_types: Entity types to include, one sheet each (default: all)
        include_sample: Whether to add the sample data row

    Raises:
        UnknownEntityTypeError: for an unregistered entity type
    """
    configs: List[EntityConfig] = [
        get_entity_config(t) for t in (entity_types if entity_types is not None else list(EntityType))
    ]

    workbook = Workbook()
    workbook.remove(workbook.active)
    for config in configs:
        _add_template_sheet(workbook, config, include_sample)
    return workbook


def template_bytes(entity_type: Union[EntityType, str]) -> bytes:
    """Single-entity template serialised as .xlsx bytes."""
    buffer = io.BytesIO()
    build_template([entity_type]).save(buffer)
    return buffer.getvalue()


def write_templates(output_dir: str) -> List[str]:
    """
    Write one template file per entity type into ``output_dir``.

    Returns:
        Paths of the written files
    """
    Path(output_dir).mkdir(parents=True, exist_ok=True)
    paths = []
    for entity_type in EntityType:
        path = str(Path(output_dir) / template_filename(entity_type))
        build_template([entity_type]).save(path)
        logger.info(f"{entity_type.value} template created: {path}")
        paths.append(path)
    return paths

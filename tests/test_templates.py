import pytest

from sheetsync.domain.imports.entities import ENTITY_TYPES
from sheetsync.domain.imports.errors import UnsupportedEntityTypeError
from sheetsync.domain.imports.mapper import FieldMapper
from sheetsync.domain.imports.processors.excel_processor import parse_spreadsheet
from sheetsync.domain.imports.templates import EXCEL_TEMPLATES, build_template_file
from sheetsync.domain.imports.validators import SchemaValidator


def test_every_entity_type_has_a_template():
    assert set(EXCEL_TEMPLATES) == set(ENTITY_TYPES)


@pytest.mark.parametrize("entity_type", ENTITY_TYPES)
def test_sample_row_passes_the_pipeline(entity_type):
    file_name, content = build_template_file(entity_type)
    parsed = parse_spreadsheet(content)

    rows = FieldMapper().map_rows(entity_type, parsed.rows)
    result = SchemaValidator().validate(entity_type, rows)

    assert file_name.endswith("_Template.xlsx")
    assert parsed.columns == list(EXCEL_TEMPLATES[entity_type].columns)
    assert result.is_valid, result.errors
    assert result.warnings == []


def test_template_without_sample_has_only_a_header():
    _, content = build_template_file("Customer", include_sample=False)

    assert parse_spreadsheet(content).rows == []


def test_unknown_template():
    with pytest.raises(UnsupportedEntityTypeError):
        build_template_file("Journal Entry")

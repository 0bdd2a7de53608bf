"""Tests for the client data import layer."""

import json

import pytest

from audit_scorer.exceptions import ImportValidationError
from audit_scorer.importer import (
    import_audit,
    map_field_to_path,
    normalize_key,
    parse_field_value_table,
    parse_value,
    validate_field_value_import,
    validate_json_import,
)
from audit_scorer.schema import DataOrigin


@pytest.fixture
def client_document() -> dict:
    return {
        "meta": {"companyName": "Boulangerie Martin", "sector": "Boulangerie"},
        "finance": {"caAnnuel": 380000, "margeBrute": 62, "resultatNet": 19000},
        "costs": {"chargesRH": 38, "cogs": 40},
        "operations": {"effectifETP": 5, "tauxOccupation": 75},
        "commercial": {"digitalisation": 35, "satisfactionClient": 82},
        "rh": {"absenteisme": 4, "turnover": 12},
    }


TABLE = """Nom entreprise\tBoulangerie Martin
Secteur\tBoulangerie
CA Annuel\t380 000 €
Marge brute\t62 %
Charges RH\t38,5 %
ETP\t5
Taux d'occupation\t75
Digitalisation\t35
Couleur préférée\tbleu
"""


class TestParsing:
    """Tests for the parsing helpers."""

    @pytest.mark.parametrize("raw,expected", [
        ("1 200 000 €", 1200000.0),
        ("12,5 %", 12.5),
        ("-3", -3.0),
        ("45k", 45.0),
        (" 1 500", 1500.0),
        ("Boulangerie", "Boulangerie"),
        ("", None),
        (None, None),
    ])
    def test_parse_value(self, raw, expected):
        assert parse_value(raw) == expected

    def test_normalize_key(self):
        assert normalize_key("  Taux d'Occupation ") == "taux doccupation"

    @pytest.mark.parametrize("label,path", [
        ("CA Annuel", "finance.caAnnuel"),
        ("Chiffre d'affaires", "finance.caAnnuel"),
        ("Taux d'occupation", "operations.tauxOccupation"),
        ("Absentéisme", "rh.absenteisme"),
        ("Raison sociale", "meta.companyName"),
        ("Couleur préférée", None),
    ])
    def test_map_field_to_path(self, label, path):
        assert map_field_to_path(label) == path

    def test_parse_table(self):
        table = parse_field_value_table(TABLE)
        assert table.data["finance"]["caAnnuel"] == 380000.0
        assert table.data["costs"]["chargesRH"] == 38.5
        assert table.data["meta"]["sector"] == "Boulangerie"
        assert table.unmapped == ["Couleur préférée"]
        assert table.missing_required == []

    def test_parse_table_with_spaces(self):
        table = parse_field_value_table("CA annuel    250000\nSecteur   BTP")
        assert table.data["finance"]["caAnnuel"] == 250000.0
        assert table.missing_required == ["meta.companyName"]


class TestJsonImport:
    """Tests for JSON documents."""

    def test_valid_document(self, client_document):
        result = validate_json_import(json.dumps(client_document))
        assert result.is_valid
        record = result.record
        assert record.sector == "restauration"
        assert record.data_origin == DataOrigin.CLIENT_DECLARED
        assert record.finance.net_margin_percent == 5.0
        assert record.ops.productivity.revenue_per_fte == pytest.approx(76000)
        assert record.commercial.satisfaction.csat_percent == 82
        assert record.hr.turnover_rate_percent == 12
        assert record.nb_services == 1

    def test_invalid_json(self):
        result = validate_json_import("{oops")
        assert not result.is_valid
        assert result.errors[0].field == "json"

    def test_missing_required_fields(self):
        result = validate_json_import(json.dumps({"finance": {"margeBrute": 60}}))
        assert not result.is_valid
        assert {e.field for e in result.errors} == {"meta.companyName", "meta.sector", "finance.caAnnuel"}

    def test_collects_every_value_error(self, client_document):
        client_document["finance"]["caAnnuel"] = -5
        client_document["operations"]["tauxOccupation"] = 120
        client_document["costs"]["cogs"] = "beaucoup"
        result = validate_json_import(json.dumps(client_document))
        assert not result.is_valid
        assert {e.field for e in result.errors} == {
            "finance.caAnnuel", "operations.tauxOccupation", "costs.cogs",
        }

    def test_range_warnings(self, client_document):
        client_document["finance"]["tresorerie"] = -2_000_000
        client_document["rh"]["turnover"] = 70
        client_document["costs"]["chargesRH"] = 85
        result = validate_json_import(json.dumps(client_document))
        assert result.is_valid
        assert {"finance.tresorerie", "rh.turnover", "costs.chargesRH"} <= {w.field for w in result.warnings}

    def test_defaults_are_reported(self, client_document):
        del client_document["finance"]["margeBrute"]
        del client_document["operations"]
        result = validate_json_import(json.dumps(client_document))
        assert result.is_valid
        assert result.record.finance.gross_margin_percent == 70
        assert result.record.ops.occupancy_rate_percent == 80
        assert result.record.ops.productivity.fte == 1
        defaulted = {w.field for w in result.warnings}
        assert {"finance.margeBrute", "operations.tauxOccupation", "operations.effectifETP"} <= defaulted

    def test_unknown_sector_warns(self, client_document):
        client_document["meta"]["sector"] = "Aéronautique"
        result = validate_json_import(json.dumps(client_document))
        assert result.is_valid
        assert result.record.sector == "autre"
        assert "meta.sector" in {w.field for w in result.warnings}


class TestTableImport:
    """Tests for pasted field / value tables."""

    def test_valid_table(self):
        result = validate_field_value_import(TABLE)
        assert result.is_valid
        assert result.record.business_name == "Boulangerie Martin"
        assert result.record.costs.hr_costs_percent == 38.5
        assert any(w.message == "Champ non reconnu, ignoré" for w in result.warnings)

    def test_missing_revenue(self):
        result = validate_field_value_import("Nom\tX\nSecteur\tBTP")
        assert not result.is_valid
        assert [e.field for e in result.errors] == ["finance.caAnnuel"]


class TestImportAudit:
    """Tests for the raising entry point."""

    def test_returns_record_and_warnings(self, client_document):
        record, warnings = import_audit(json.dumps(client_document))
        assert record.business_name == "Boulangerie Martin"
        assert isinstance(warnings, list)

    def test_raises_with_errors(self):
        with pytest.raises(ImportValidationError) as exc_info:
            import_audit("Secteur\tBTP", fmt="table")
        assert [e.field for e in exc_info.value.errors] == ["meta.companyName", "finance.caAnnuel"]

    def test_unknown_format(self):
        with pytest.raises(ValueError, match="Unknown import format"):
            import_audit("{}", fmt="xml")

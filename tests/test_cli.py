"""Tests for the audit-scorer CLI."""

import json

import pytest
import yaml
from click.testing import CliRunner

from audit_scorer.cli import main as scorer_cli
from audit_scorer.cli import parse_deltas


@pytest.fixture
def runner():
    return CliRunner()


class TestScoreCommand:
    """Tests for 'audit-scorer score'."""

    def test_formatted_output(self, runner, audit_file):
        result = runner.invoke(scorer_cli, ["score", "-i", str(audit_file)])
        assert result.exit_code == 0, result.output
        assert "Audit Summary" in result.output
        assert "76.0" in result.output
        assert "FAIBLE" in result.output

    def test_verbose_output(self, runner, audit_file):
        result = runner.invoke(scorer_cli, ["score", "-i", str(audit_file), "-v"])
        assert result.exit_code == 0, result.output
        assert "Quantified Recommendations" in result.output
        assert "Score Breakdown" in result.output

    def test_json_output(self, runner, audit_file):
        result = runner.invoke(scorer_cli, ["score", "-i", str(audit_file), "-j"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["scores"]["global"] == pytest.approx(76.0)
        assert data["decision"]["priority_level"] == "FAIBLE"

    def test_json_to_file(self, runner, audit_file, tmp_path):
        out = tmp_path / "report.json"
        result = runner.invoke(scorer_cli, ["score", "-i", str(audit_file), "-j", "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert json.loads(out.read_text(encoding="utf-8"))["sector_label"] == "Vétérinaire"

    def test_invalid_audit_exits_1(self, runner, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("[]", encoding="utf-8")
        result = runner.invoke(scorer_cli, ["score", "-i", str(path)])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_coherence_warnings_and_benchmarks_shown(self, runner, tmp_path, structured_payload):
        path = tmp_path / "osteo.json"
        path.write_text(json.dumps(structured_payload), encoding="utf-8")
        result = runner.invoke(scorer_cli, ["score", "-i", str(path)])
        assert result.exit_code == 0, result.output
        assert "Coherence Warnings" in result.output
        assert "osteo_standard" in result.output
        assert "(EUR)" in result.output

    def test_unknown_variant_exits_1(self, runner, tmp_path, legacy_payload):
        legacy_payload["variant"] = "veto_lunaire"
        path = tmp_path / "variant.json"
        path.write_text(json.dumps(legacy_payload), encoding="utf-8")
        result = runner.invoke(scorer_cli, ["score", "-i", str(path)])
        assert result.exit_code == 1
        assert "veto_lunaire" in result.output


class TestSimulateCommand:
    """Tests for 'audit-scorer simulate'."""

    def test_simulation(self, runner, audit_file):
        result = runner.invoke(scorer_cli, [
            "simulate", "-i", str(audit_file), "-t", "TRESORERIE", "-d", "delai_client=-15",
        ])
        assert result.exit_code == 0, result.output
        assert "Simulation trésorerie" in result.output

    def test_json_simulation(self, runner, audit_file):
        result = runner.invoke(scorer_cli, [
            "simulate", "-i", str(audit_file), "-t", "rentabilite", "-d", "marge_brute=2", "-j",
        ])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["impact_min"] == 6300

    def test_no_change(self, runner, audit_file):
        result = runner.invoke(scorer_cli, ["simulate", "-i", str(audit_file), "-t", "RH"])
        assert result.exit_code == 0
        assert "No impact" in result.output

    def test_unknown_type(self, runner, audit_file):
        result = runner.invoke(scorer_cli, ["simulate", "-i", str(audit_file), "-t", "LOTO", "-d", "x=1"])
        assert result.exit_code == 1
        assert "Unknown simulation type" in result.output

    def test_parse_deltas(self):
        assert parse_deltas(("delai_client=-15", " turnover = 5 ")) == {"delai_client": -15.0, "turnover": 5.0}


class TestListingCommands:
    """Tests for 'scenarios' and 'sectors'."""

    def test_scenarios(self, runner):
        result = runner.invoke(scorer_cli, ["scenarios"])
        assert result.exit_code == 0, result.output
        assert "delai_client" in result.output

    def test_scenarios_ranked(self, runner, audit_file):
        result = runner.invoke(scorer_cli, ["scenarios", "-i", str(audit_file)])
        assert result.exit_code == 0, result.output
        assert "1. TRESORERIE" in result.output

    def test_sectors(self, runner):
        result = runner.invoke(scorer_cli, ["sectors"])
        assert result.exit_code == 0, result.output
        assert "veterinaire" in result.output
        assert "veto_standard*" in result.output

    def test_resolve_sector(self, runner):
        result = runner.invoke(scorer_cli, ["sectors", "--resolve", "kiné"])
        assert result.exit_code == 0, result.output
        assert "kinesitherapeute" in result.output


class TestImportCommand:
    """Tests for 'audit-scorer import'."""

    def test_import_table(self, runner, tmp_path):
        source = tmp_path / "export.txt"
        source.write_text("Nom\tGarage Dupont\nSecteur\tBTP\nCA\t250000\n", encoding="utf-8")
        out = tmp_path / "audit.json"
        result = runner.invoke(scorer_cli, ["import", str(source), "--format", "table", "-o", str(out)])
        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["sector"] == "btp"
        assert data["dataOrigin"] == "client_declared"

        # The converted file scores as-is
        scored = runner.invoke(scorer_cli, ["score", "-i", str(out)])
        assert scored.exit_code == 0, scored.output

    def test_import_invalid(self, runner, tmp_path):
        source = tmp_path / "client.json"
        source.write_text(json.dumps({"meta": {"companyName": "X"}}), encoding="utf-8")
        result = runner.invoke(scorer_cli, ["import", str(source)])
        assert result.exit_code == 1
        assert "Import invalid" in result.output


class TestValidateCommand:
    """Tests for 'audit-scorer validate'."""

    def test_valid(self, runner, audit_file):
        result = runner.invoke(scorer_cli, ["validate", "-i", str(audit_file)])
        assert result.exit_code == 0
        assert "Audit valid" in result.output

    def test_invalid(self, runner, tmp_path):
        result = runner.invoke(scorer_cli, ["validate", "-i", str(tmp_path / "absent.json")])
        assert result.exit_code == 1
        assert "Audit invalid" in result.output


class TestInitConfigCommand:
    """Tests for 'audit-scorer init-config'."""

    def test_creates_config(self, runner, tmp_path):
        out = tmp_path / "audit-config.yaml"
        result = runner.invoke(scorer_cli, ["init-config", "--out", str(out)])
        assert result.exit_code == 0, result.output
        data = yaml.safe_load(out.read_text(encoding="utf-8"))
        assert data["dimension_weights"]["financier"] == 0.35
        assert data["decision"]["top_items"] == 3

    def test_refuses_to_overwrite(self, runner, tmp_path):
        out = tmp_path / "audit-config.yaml"
        out.write_text("{}", encoding="utf-8")
        result = runner.invoke(scorer_cli, ["init-config", "--out", str(out)])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_force_overwrites(self, runner, tmp_path):
        out = tmp_path / "audit-config.yaml"
        out.write_text("{}", encoding="utf-8")
        result = runner.invoke(scorer_cli, ["init-config", "--out", str(out), "--force"])
        assert result.exit_code == 0
        assert "dimension_weights" in out.read_text(encoding="utf-8")

import logging
from decimal import Decimal
from pathlib import Path

import pytest
from openpyxl import load_workbook

from gge_builders import lsr_xml, no_estimate_xml, write_gge
from gge_rollup.config import Settings
from gge_rollup.models.report_model import NLSRMappingEntry
from gge_rollup.services.pipeline_service import (
    NoInputDocumentsError,
    discover_documents,
    document_stem,
    document_type,
    process_document,
    run_pipeline,
)


def test_discover_skips_result_folders(corpus):
    found = discover_documents(corpus, ["osr"])
    assert [p.relative_to(corpus).as_posix() for p in found] == [
        "bad.gge",
        "Жилье/a.gge",
        "Жилье/b.gge",
    ]


def test_discover_extension_case_insensitive(tmp_path):
    write_gge(tmp_path / "A.GGE", lsr_xml())
    write_gge(tmp_path / "notes.xml", lsr_xml())
    assert [p.name for p in discover_documents(tmp_path)] == ["A.GGE"]


def test_discover_missing_dir(tmp_path):
    assert discover_documents(tmp_path / "нет") == []


def test_document_type(corpus):
    assert document_type(corpus / "Жилье" / "a.gge", corpus) == "Жилье"
    assert document_type(corpus / "bad.gge", corpus) == ""
    assert document_type(Path("/elsewhere/x.gge"), corpus) == ""


def test_process_document_reports_error(corpus, caplog):
    result = process_document(corpus / "bad.gge", corpus, "ТЦ_")
    assert not result.ok
    assert "Estimate" in result.error
    assert result.rows == []
    assert "bad.gge" in caplog.text


def test_run_pipeline(run_settings):
    nlsr = [
        NLSRMappingEntry(name="Общестрой", keyword="работы"),
        NLSRMappingEntry(name="Электроснабжение", keyword="электро"),
    ]
    tep = {("Жилье", "Школа на 550 мест", "Корпус А", "02", "01"): Decimal("100")}
    report = run_pipeline(run_settings, nlsr=nlsr, tep=tep)

    assert [r.path.name for r in report.processed] == ["a.gge", "b.gge"]
    assert [r.path.name for r in report.skipped] == ["bad.gge"]

    # ЛСР: 1 строка, ОСР: 2 строки (строка "Итого" не учитывается)
    assert len(report.main_rows) == 3
    assert {r.type for r in report.main_rows} == {"Жилье"}
    assert [r.nlsr_group for r in report.main_rows] == ["Общестрой", "Общестрой", "Электроснабжение"]

    assert len(report.detailed) == 3
    by_name2 = {(g.name2, g.nlsr_group): g for g in report.grouped}
    a = by_name2[("Корпус А", "Общестрой")]
    assert a.total == Decimal("1680.50")
    assert a.tep == Decimal("100")
    assert a.metric == Decimal("16.81")

    b = by_name2[("Корпус Б", "Электроснабжение")]
    assert b.tep is None and b.metric is None

    assert report.output_path == run_settings.combined_path
    wb = load_workbook(report.output_path)
    assert wb.sheetnames == ["MainData", "GroupedData", "DetailedData"]
    assert wb["MainData"].max_row == 4
    assert report.extra_outputs == []


def test_grouped_total_equals_sum_of_rows(run_settings):
    report = run_pipeline(run_settings, nlsr=[], tep={})
    assert sum(g.total for g in report.grouped) == sum(r.total for r in report.main_rows)


def test_corpus_isolation(tmp_path, caplog):
    root = tmp_path / "in"
    for i in range(3):
        write_gge(root / f"{i}.gge", lsr_xml(est_name=f"Смета {i}"))
    write_gge(root / "3.gge", no_estimate_xml())
    settings = Settings(INPUT_DIR=str(root), OUTPUT_DIR=str(tmp_path / "out"))

    with caplog.at_level(logging.INFO):
        report = run_pipeline(settings, nlsr=[], tep={})

    assert len(report.main_rows) == 3
    assert [r.description for r in report.main_rows] == ["Смета 0", "Смета 1", "Смета 2"]
    assert all(r.total == Decimal("1680.50") for r in report.main_rows)
    assert any("3.gge" in rec.getMessage() and rec.levelno == logging.ERROR for rec in caplog.records)


def test_no_input_documents(tmp_path):
    (tmp_path / "in").mkdir()
    settings = Settings(INPUT_DIR=str(tmp_path / "in"), OUTPUT_DIR=str(tmp_path / "out"))
    with pytest.raises(NoInputDocumentsError):
        run_pipeline(settings, nlsr=[], tep={})
    assert not (tmp_path / "out").exists()


def test_optional_outputs(run_settings):
    settings = run_settings.model_copy(update={"WRITE_DOCUMENT_WORKBOOKS": True, "WRITE_LSR_SUMMARY": True})
    report = run_pipeline(settings, nlsr=[], tep={})
    names = sorted(p.name for p in report.extra_outputs)
    assert names == ["LSR_combined.xlsx", "Жилье_a.xlsx"]
    assert (settings.documents_dir / "Жилье_a.xlsx").exists()


def test_document_workbooks_with_same_file_name(run_settings, corpus):
    write_gge(corpus / "Школы" / "a.gge", lsr_xml(est_name="Школьный корпус"))
    settings = run_settings.model_copy(update={"WRITE_DOCUMENT_WORKBOOKS": True})
    report = run_pipeline(settings, nlsr=[], tep={})
    assert sorted(p.name for p in report.extra_outputs) == ["Жилье_a.xlsx", "Школы_a.xlsx"]
    assert all(p.exists() for p in report.extra_outputs)


def test_document_stem(corpus):
    assert document_stem(corpus / "Жилье" / "a.gge", corpus) == "Жилье_a"
    assert document_stem(corpus / "Жилье" / "2024" / "a.gge", corpus) == "Жилье_2024_a"
    assert document_stem(corpus / "bad.gge", corpus) == "bad"
    assert document_stem(Path("/elsewhere/x.gge"), corpus) == "x"


def test_mapping_files_read_from_settings(run_settings):
    # NLSR.xlsx / TEP.xlsx отсутствуют — запуск проходит без классификации
    report = run_pipeline(run_settings)
    assert all(r.nlsr_group == "" for r in report.main_rows)
    assert all(g.tep is None for g in report.grouped)


def test_corrupt_mapping_files_do_not_stop_run(run_settings, caplog):
    Path(run_settings.NLSR_PATH).write_bytes(b"not a zip")
    Path(run_settings.TEP_PATH).write_bytes(b"not a zip")
    report = run_pipeline(run_settings)
    assert report.output_path.exists()
    assert len(report.processed) == 2
    assert all(r.nlsr_group == "" for r in report.main_rows)
    assert all(g.tep is None for g in report.grouped)
    assert "Не удалось прочитать справочник" in caplog.text


def test_progress_callback(run_settings):
    steps = []
    run_pipeline(run_settings, nlsr=[], tep={}, progress_cb=lambda pct, msg: steps.append(pct))
    assert steps == sorted(steps)
    assert steps[-1] == 95

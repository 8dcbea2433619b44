"""CLI entrypoint.

Команды:
- `gge-rollup run [--input DIR] [--output FILE] [--nlsr FILE] [--tep FILE] [--documents] [--lsr-summary]`
- `gge-rollup show FILE` — строки GroupedData готового отчёта

Код выхода 1 — нет входных файлов или сводный отчёт не записан.
"""
import argparse
import logging
import sys
from pathlib import Path

from gge_rollup.config import Settings, settings
from gge_rollup.logging_ import setup_logging
from gge_rollup.services.excel_service import ReportWriteError, read_grouped_rows
from gge_rollup.services.pipeline_service import NoInputDocumentsError, run_pipeline

logger = logging.getLogger("gge_rollup.cli")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="gge-rollup")
    sub = p.add_subparsers(dest="cmd", required=True)

    pr = sub.add_parser("run", help="обработать папку .gge и записать сводный отчёт")
    pr.add_argument("--input", help="папка с документами (INPUT_DIR)")
    pr.add_argument("--output", help="путь сводного отчёта .xlsx")
    pr.add_argument("--nlsr", help="справочник НЛСР (NLSR_PATH)")
    pr.add_argument("--tep", help="справочник ТЭП (TEP_PATH)")
    pr.add_argument("--documents", action="store_true", help="книга Excel на каждый документ")
    pr.add_argument("--lsr-summary", action="store_true", help="объединённый файл LSR_Cur")

    ps = sub.add_parser("show", help="вывести GroupedData готового отчёта")
    ps.add_argument("file")
    ps.add_argument("--all", action="store_true", help="включая строки с пустыми TEP/Kvadrat")
    return p


def _run_settings(args: argparse.Namespace, base: Settings) -> Settings:
    """Аргументы командной строки поверх настроек из .env."""
    update: dict = {}
    if args.input:
        update["INPUT_DIR"] = args.input
    if args.output:
        out = Path(args.output)
        update["OUTPUT_DIR"] = str(out.parent)
        update["COMBINED_FILENAME"] = out.name
    if args.nlsr:
        update["NLSR_PATH"] = args.nlsr
    if args.tep:
        update["TEP_PATH"] = args.tep
    if args.documents:
        update["WRITE_DOCUMENT_WORKBOOKS"] = True
    if args.lsr_summary:
        update["WRITE_LSR_SUMMARY"] = True
    return base.model_copy(update=update)


def _cmd_run(args: argparse.Namespace) -> int:
    run_settings = _run_settings(args, settings)
    try:
        report = run_pipeline(run_settings)
    except (NoInputDocumentsError, ReportWriteError) as e:
        logger.error("%s", e)
        return 1

    for r in report.skipped:
        print(f"пропущен: {r.path} — {r.error}")
    print(f"Обработано: {len(report.processed)}, пропущено: {len(report.skipped)}")
    print(f"Отчёт: {report.output_path}")
    for p in report.extra_outputs:
        print(f"  + {p}")
    return 0


def _cmd_show(args: argparse.Namespace) -> int:
    path = Path(args.file)
    if not path.exists():
        logger.error("Файл не найден: %s", path)
        return 1
    try:
        rows = read_grouped_rows(path, complete_only=not args.all)
    except ValueError as e:
        logger.error("%s", e)
        return 1

    for row in rows:
        print(" | ".join("" if v is None else str(v) for v in row.values()))
    print(f"Строк: {len(rows)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(settings.LOG_LEVEL)

    if args.cmd == "show":
        return _cmd_show(args)
    return _cmd_run(args)


if __name__ == "__main__":
    sys.exit(main())

from pathlib import Path

import pytest

from gge_builders import OSR_LINES, lsr_xml, no_estimate_xml, osr_xml, write_gge
from gge_rollup.config import Settings


@pytest.fixture
def corpus(tmp_path: Path) -> Path:
    """
    Объекты/
      Жилье/a.gge      — ЛСР (1 строка)
      Жилье/b.gge      — ОСР (2 строки + "Итого")
      bad.gge          — нет Estimate
      OSR/old.gge      — результаты прошлого запуска, не читаются
    """
    root = tmp_path / "Объекты"
    write_gge(root / "Жилье" / "a.gge", lsr_xml())
    write_gge(root / "Жилье" / "b.gge", osr_xml(OSR_LINES))
    write_gge(root / "bad.gge", no_estimate_xml())
    write_gge(root / "OSR" / "old.gge", lsr_xml(est_name="Старый расчёт"))
    return root


@pytest.fixture
def run_settings(tmp_path: Path, corpus: Path) -> Settings:
    return Settings(
        INPUT_DIR=str(corpus),
        OUTPUT_DIR=str(tmp_path / "output"),
        NLSR_PATH=str(tmp_path / "NLSR.xlsx"),
        TEP_PATH=str(tmp_path / "TEP.xlsx"),
    )

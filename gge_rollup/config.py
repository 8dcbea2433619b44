from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    # Входные данные
    INPUT_DIR: str = "./Объекты"
    SKIP_DIRS: list[str] = ["OSR"]          # папки с результатами прошлых запусков
    MARKER_PREFIX: str = "ТЦ_"              # префикс кода материала для КАЦ

    # Внешние справочники (отсутствие файла — не ошибка)
    NLSR_PATH: str = "NLSR.xlsx"
    TEP_PATH: str = "TEP.xlsx"

    # Результаты
    OUTPUT_DIR: str = "./output"
    COMBINED_FILENAME: str = "combined_output.xlsx"
    LSR_SUMMARY_FILENAME: str = "LSR_combined.xlsx"
    WRITE_DOCUMENT_WORKBOOKS: bool = False
    WRITE_LSR_SUMMARY: bool = False

    # Приложение
    JOB_TTL_MINUTES: int = 60
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def input_dir(self) -> Path:
        return Path(self.INPUT_DIR)

    @property
    def output_dir(self) -> Path:
        return Path(self.OUTPUT_DIR)

    @property
    def combined_path(self) -> Path:
        return self.output_dir / self.COMBINED_FILENAME

    @property
    def documents_dir(self) -> Path:
        """Папка для отдельных книг по каждому .gge файлу."""
        return self.output_dir / "documents"


settings = Settings()

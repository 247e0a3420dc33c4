from functools import lru_cache

from pydantic import BaseModel, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalysisConfig(BaseModel):
    grouping_window_ms: int = 2000  # Same-ability hits within this of the first hit condense
    botched_margin_pct: int = 0  # intended - actual must exceed this to flag
    buff_lookback_ms: int = 30000
    abilities_only: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    debug: bool = False
    log_level: str = "INFO"
    analysis: AnalysisConfig = AnalysisConfig()

    @model_validator(mode="after")
    def _check_analysis_bounds(self):
        if self.analysis.grouping_window_ms < 0:
            raise ValueError("ANALYSIS__GROUPING_WINDOW_MS must be >= 0")
        if not 0 <= self.analysis.botched_margin_pct <= 100:
            raise ValueError("ANALYSIS__BOTCHED_MARGIN_PCT must be within 0-100")
        if self.analysis.buff_lookback_ms < 0:
            raise ValueError("ANALYSIS__BUFF_LOOKBACK_MS must be >= 0")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

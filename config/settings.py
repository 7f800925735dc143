"""
config/settings.py

- .env에 정의한 환경변수를 읽어 애플리케이션 전역 설정으로 제공합니다.
- pydantic v2 / pydantic-settings v2 사용.
- 학교 REST 백엔드(SCHOOL_API_*)의 주소/타임아웃과 성적표에 찍히는 학교 정보를 담습니다.
"""

from typing import List, Literal
from pydantic import field_validator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # =========================
    # 앱/런타임
    # =========================
    ENV: Literal["dev", "stage", "prod"] = "dev"
    APP_TITLE: str = "School Portal Results API"
    APP_DESCRIPTION: str = "성적 입력 · 결과 집계 · 결재를 담당하는 학교 포털 BFF API"
    APP_VERSION: str = "1.0.0"

    # =========================
    # CORS
    # =========================
    # 콤마(,)로 구분된 문자열 → List[str] 로 파싱
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, v):
        if isinstance(v, str):
            # "a,b , c" → ["a","b","c"]
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    # =========================
    # School REST API (원격 백엔드)
    # =========================
    SCHOOL_API_BASE_URL: str = "http://localhost:8080/api"
    SCHOOL_API_TIMEOUT: float = 10.0   # 초 단위, 재시도 없음

    @computed_field  # type: ignore[misc]
    @property
    def SCHOOL_API_ROOT(self) -> str:
        """끝 슬래시를 제거한 베이스 URL. 클라이언트는 항상 이 값을 사용."""
        return self.SCHOOL_API_BASE_URL.rstrip("/")

    # =========================
    # 성적표 / 학교 정보
    # =========================
    SCHOOL_NAME: str = "Graceland Royal Academy"
    PRINCIPAL_NAME: str = "Principal"

    # =========================
    # Logging / Misc
    # =========================
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    MAX_UPLOAD_MB: int = 5

    # =========================
    # BaseSettings Config
    # =========================
    model_config = SettingsConfigDict(
        env_file=".env",               # .env에서 값 로드
        env_file_encoding="utf-8",
        case_sensitive=False,          # 환경변수 대소문자 비구분
        extra="ignore",                # 정의되지 않은 키는 무시
    )


# ✅ settings 객체를 통해 어디서든 접근 가능
settings = Settings()

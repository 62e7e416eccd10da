from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from reportlab.lib.units import mm

from bridgecare.report.layout import LayoutConfig


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    app_name: str = 'BridgeCare Consultation Backend'

    data_dir: Path = Field(default=Path('./data'))
    log_level: str = 'INFO'

    # Chat-completion collaborator
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices('OPENAI_API_KEY', 'API_KEY', 'LLM_API_KEY'),
    )
    openai_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices('BASE_URL', 'OPENAI_BASE_URL', 'LLM_BASE_URL'),
    )
    chat_model: str = 'gpt-4o'
    chat_temperature: float = 0.7
    chat_max_tokens: int = 1500
    chat_timeout_seconds: int = 60

    # Responses starting with this marker carry a summary document
    summary_marker: str = 'PDF_SUMMARY::'

    # HTTP server
    server_host: str = '0.0.0.0'
    server_port: int = 8010
    session_ttl_seconds: int = 3600
    max_sessions: int = 256
    max_attachment_bytes: int = 10 * 1024 * 1024

    # Voice assistant
    voice_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices('VAPI_API_KEY', 'NEXT_PUBLIC_VAPI_API_KEY', 'VOICE_API_KEY'),
    )
    voice_model_provider: str = 'openai'
    voice_provider: str = 'playht'
    voice_id: str = 'jennifer'

    # PDF summary layout (millimetres and points as noted)
    pdf_title: str = 'BridgeCare - Consultation Summary'
    pdf_filename: str = 'bridgecare-consultation-summary.pdf'
    pdf_font_name: str = 'Helvetica'
    pdf_bold_font_name: str = 'Helvetica-Bold'
    pdf_title_font_size: float = 18
    pdf_heading_font_size: float = 14
    pdf_body_font_size: float = 10
    pdf_page_margin_mm: float = 15
    pdf_line_height_mm: float = 7
    pdf_bullet_indent_mm: float = 5
    pdf_accent_color: str = '#60a5fa'
    pdf_divider_color: str = '#cccccc'
    pdf_divider_thickness_mm: float = 0.2
    pdf_block_spacing: float = 0.5
    pdf_bullet_spacing: float = 0.3
    pdf_paragraph_spacing: float = 1.0

    def layout_config(self) -> LayoutConfig:
        return LayoutConfig(
            title=self.pdf_title,
            filename=self.pdf_filename,
            font_name=self.pdf_font_name,
            bold_font_name=self.pdf_bold_font_name,
            title_font_size=self.pdf_title_font_size,
            heading_font_size=self.pdf_heading_font_size,
            body_font_size=self.pdf_body_font_size,
            margin=self.pdf_page_margin_mm * mm,
            line_height=self.pdf_line_height_mm * mm,
            bullet_indent=self.pdf_bullet_indent_mm * mm,
            accent_color=self.pdf_accent_color,
            divider_color=self.pdf_divider_color,
            divider_thickness=self.pdf_divider_thickness_mm * mm,
            block_spacing=self.pdf_block_spacing,
            bullet_spacing=self.pdf_bullet_spacing,
            paragraph_spacing=self.pdf_paragraph_spacing,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    (settings.data_dir / 'exports').mkdir(parents=True, exist_ok=True)
    return settings

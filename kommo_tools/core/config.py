from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file='.env', extra='allow', case_sensitive=False)

    # Dev and Test settings
    testing: bool = False
    dev_mode: bool = False
    log_level: str = 'INFO'

    logfire_token: Optional[str] = None

    # Sentry
    sentry_dsn: Optional[str] = None

    # Kommo
    kommo_base_url: str = 'https://example.kommo.com'
    kommo_subdomain: Optional[str] = None
    kommo_access_token: str = 'test-key'
    kommo_timeout: float = 30.0
    kommo_catalog_page_limit: int = 50

    # Kommo allows 7 requests per second per account
    kommo_api_max_rate: int = 7
    kommo_api_rate_period: int = 1
    kommo_api_enable_retry: bool = True
    kommo_api_max_retry: int = 3

    @model_validator(mode='before')
    @classmethod
    def base_url_from_subdomain(cls, values):
        if not isinstance(values, dict):
            return values
        lowered = {k.lower(): v for k, v in values.items()}
        if lowered.get('kommo_subdomain') and not lowered.get('kommo_base_url'):
            values['kommo_base_url'] = f'https://{lowered["kommo_subdomain"]}.kommo.com'
        return values

    @property
    def kommo_api_url(self) -> str:
        base_url = self.kommo_base_url.rstrip('/')
        if base_url.endswith('/api/v4'):
            return base_url
        return f'{base_url}/api/v4'


settings = Settings()

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_PROJECT_ROOT = Path(__file__).resolve().parents[4]
_ENV_PATH = _PROJECT_ROOT / '.env'
_ENV_FILE = _ENV_PATH if _ENV_PATH.exists() else (_PROJECT_ROOT / '.env.example')


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_ignore_empty=True,
        extra='ignore',
    )

    PROJECT_NAME: str = 'Table Booking Widget'
    VERSION: str = '0.1.0'
    DEBUG: bool = False  # Verbose Logger.io arg/return logging
    LOG_FILE_ENABLED: bool = False  # Rotating file sink under logs/

    # Remote booking service (Eveve)
    EVEVE_BOOKING_BASE_URL: str = 'https://nz.eveve.com'  # Overridden per establishment by dapi
    EVEVE_PAYMENT_BASE_URL: str = 'https://uk6.eveve.com'  # pi-get / deposit-get / pm-id / restore
    EVEVE_FORM_BASE_URL: str = 'https://nz.eveve.com'  # /web/form establishment config
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Payment processor (Stripe)
    STRIPE_API_BASE_URL: str = 'https://api.stripe.com/v1'

    # Session timing
    HOLD_COUNTDOWN_SECONDS: float = 180.0  # Visible hold countdown
    PAYMENT_SAFETY_TIMEOUT_SECONDS: float = 12.0  # Forced confirm after a successful charge
    AVAILABILITY_DEBOUNCE_SECONDS: float = 1.2  # Day-availability fetch debounce

    # Availability
    MONTH_AVAIL_DEFAULT_COVERS: int = 2  # Closed-dates lookup uses a fixed party size

    # Localisation
    DEFAULT_LANGUAGE: str = 'english'

    # Tracing
    OTEL_CONSOLE_EXPORT: bool = False

    @field_validator(
        'EVEVE_BOOKING_BASE_URL',
        'EVEVE_PAYMENT_BASE_URL',
        'EVEVE_FORM_BASE_URL',
        'STRIPE_API_BASE_URL',
        mode='before',
    )
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if isinstance(v, str):
            return v.rstrip('/')
        return v

    @field_validator(
        'HOLD_COUNTDOWN_SECONDS',
        'PAYMENT_SAFETY_TIMEOUT_SECONDS',
        'AVAILABILITY_DEBOUNCE_SECONDS',
        'HTTP_TIMEOUT_SECONDS',
    )
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError('timer durations must be positive')
        return v


settings = Settings()  # type: ignore

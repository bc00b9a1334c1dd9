from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "otpgateway"
    ROOT_URL: str = "http://localhost:9000"
    LOG_LEVEL: str = "INFO"
    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = 9000

    OTP_TTL_SECONDS: int = 300
    OTP_MAX_ATTEMPTS: int = 5

    # namespace:secret,namespace2:secret2
    AUTH_CREDENTIALS: str = ""

    STORE_BACKEND: str = "redis"  # redis | memory
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "OTP"
    # If set, 'check' and 'close' events are PUBLISHed to this channel.
    REDIS_PUBLISH_KEY: str = ""
    STORE_TIMEOUT_SECONDS: float = 2.0

    PROVIDERS: str = "console"
    PUSH_TIMEOUT_SECONDS: float = 5.0
    OTP_SUBJECT_TEMPLATE: str = "Your verification code"
    OTP_BODY_TEMPLATE: str = "Your {channel} verification code is {otp}. Verify at {otp_url}"

    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "otp@localhost"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_SUBJECT_TEMPLATE: str = ""
    SMTP_BODY_TEMPLATE: str = ""

    WEBHOOK_ID: str = "webhook"
    WEBHOOK_URL: str = ""
    WEBHOOK_USERNAME: str = ""
    WEBHOOK_PASSWORD: str = ""
    WEBHOOK_CHANNEL_NAME: str = "Webhook"
    WEBHOOK_ADDRESS_NAME: str = "Address"
    WEBHOOK_MAX_ADDRESS_LEN: int = 200
    WEBHOOK_MAX_OTP_LEN: int = 6
    WEBHOOK_SUBJECT_TEMPLATE: str = ""
    WEBHOOK_BODY_TEMPLATE: str = ""

    KALEYRA_API_KEY: str = ""
    KALEYRA_SID: str = ""
    KALEYRA_SENDER: str = ""
    KALEYRA_DEFAULT_PHONE_CODE: str = ""
    KALEYRA_SUBJECT_TEMPLATE: str = ""
    KALEYRA_BODY_TEMPLATE: str = "Your verification code is {otp}"

    CONSOLE_SUBJECT_TEMPLATE: str = ""
    CONSOLE_BODY_TEMPLATE: str = ""

    @property
    def providers_list(self) -> List[str]:
        return [p.strip().lower() for p in self.PROVIDERS.split(",") if p.strip()]

    @property
    def auth_credentials_map(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for pair in self.AUTH_CREDENTIALS.split(","):
            namespace, _, secret = pair.strip().partition(":")
            if namespace.strip() and secret.strip():
                out[namespace.strip()] = secret.strip()
        return out

    def provider_templates(self, provider_id: str) -> tuple[str, str]:
        prefix = provider_id.upper()
        subject = str(getattr(self, f"{prefix}_SUBJECT_TEMPLATE", "") or "").strip() or self.OTP_SUBJECT_TEMPLATE
        body = str(getattr(self, f"{prefix}_BODY_TEMPLATE", "") or "").strip() or self.OTP_BODY_TEMPLATE
        return subject, body

settings = Settings()

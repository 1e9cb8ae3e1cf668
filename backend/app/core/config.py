"""Configuración central basada en variables de entorno."""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Valores globales leídos desde `.env` o el entorno."""

    environment: str = "development"
    log_level: str | None = Field(
        default=None,
        description="Nivel de logging global (ej. debug, info, warning). Cuando no se define, usa un valor por ambiente.",
    )
    request_log_level: str = Field(
        default="info",
        description=(
            "Nivel mínimo para registrar solicitudes en middleware. "
            "Valores más altos (warning/error) reducen registros de peticiones exitosas."
        ),
    )
    request_log_skip_prefixes: tuple[str, ...] = Field(
        default=("/health", "/docs", "/openapi"),
        description="Prefijos de ruta para los que no se registrarán eventos de request.started/completed.",
    )
    log_file_path: str | None = Field(
        default=None,
        description="Archivo de logs rotativo; sin valor sólo se escribe a stdout.",
    )
    supabase_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("REPORTING_SUPABASE_URL", "SUPABASE_URL"),
    )
    # Acepta los nombres que inyecta el runtime de Supabase además del prefijo propio
    supabase_anon: str | None = Field(
        default=None,
        validation_alias=AliasChoices("REPORTING_SUPABASE_ANON", "SUPABASE_ANON_KEY", "SUPABASE_ANON"),
    )
    supabase_service_role: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "REPORTING_SUPABASE_SERVICE_ROLE", "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_ROLE"
        ),
    )
    supabase_timeout_seconds: float = 10.0
    reporting_schema: str = Field(
        default="reporting",
        description="Esquema de Postgres expuesto por PostgREST donde vive la tabla de reportes.",
    )
    conversations_table: str = "conversations"
    twilio_auth_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("REPORTING_TWILIO_AUTH_TOKEN", "TWILIO_AUTH_TOKEN"),
    )
    validate_twilio_signature: bool = Field(
        default=False,
        description="Exige `X-Twilio-Signature` válido en el webhook de Event Streams.",
    )
    public_base_url: str | None = Field(
        default=None,
        description="URL pública del servicio; se usa para validar firmas detrás de un proxy.",
    )
    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="REPORTING_", extra="allow", populate_by_name=True
    )


settings = Settings()

"""Configuration management using Pydantic Settings."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from sqlalchemy.engine import make_url
from urllib.parse import urlparse, parse_qs
import ssl


class Settings(BaseSettings):
    """Application settings with validation."""

    # OpenAI Configuration (planner)
    openai_api_key: str
    openai_base_url: Optional[str] = None
    planner_model: str = "gpt-4o-mini"
    planner_max_tokens: int = 2048

    # PostgreSQL Configuration
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_db: str = "sales_orders"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    database_url: Optional[str] = None

    # ERP (system of record) Configuration
    erp_base_url: str = "http://localhost:9000/api"
    erp_api_token: Optional[str] = None
    erp_timeout_seconds: float = 30.0

    # Tool dispatch loop
    max_tool_rounds: int = 8
    history_window: int = 8
    stream_chunk_size: int = 50
    stream_chunk_delay_seconds: float = 0.01

    # Search limits
    party_search_limit: int = 10
    item_search_limit: int = 15
    add_item_search_limit: int = 10
    hydration_search_limit: int = 5

    # Draft store
    draft_write_retries: int = 3

    # LangSmith Configuration
    langchain_tracing_v2: bool = True
    langchain_api_key: Optional[str] = None
    langchain_project: str = "sales-order-agent"

    # Application Configuration
    app_name: str = "Sales Order Agent"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def get_database_url(self) -> str:
        """Get database URL, constructing it if not provided.

        Automatically strips sslmode parameter from URL as asyncpg doesn't support it.
        SSL is configured separately via get_connect_args().
        """
        if self.database_url:
            url = make_url(self.database_url).difference_update_query(["sslmode"])
            return url.render_as_string(hide_password=False)
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    def get_connect_args(self) -> dict:
        """Get driver connection args for the configured database.

        For asyncpg, converts the sslmode parameter of database_url into an SSL
        context. Cloud hosts (Supabase, AWS, poolers) get a context without
        certificate verification, and pgbouncer poolers get the prepared
        statement cache disabled.

        Returns:
            dict with connection arguments (empty for non-PostgreSQL URLs)
        """
        if not self.get_database_url.startswith("postgresql"):
            return {}

        if not self.database_url:
            return {'ssl': False}

        parsed = urlparse(self.database_url)
        query_params = parse_qs(parsed.query)
        sslmode = query_params.get('sslmode', [''])[0]

        is_cloud_db = (
            'supabase' in parsed.netloc or
            'amazonaws' in parsed.netloc or
            'pooler' in parsed.netloc
        )
        is_pgbouncer = 'pooler' in parsed.netloc

        connect_args = {}

        if sslmode == 'disable':
            connect_args['ssl'] = False
        elif sslmode in ('require', 'prefer') or is_cloud_db:
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
            connect_args['ssl'] = ssl_context
        else:
            connect_args['ssl'] = False

        # PgBouncer doesn't support prepared statements
        if is_pgbouncer:
            connect_args['statement_cache_size'] = 0
            connect_args['prepared_statement_cache_size'] = 0

        return connect_args


# Global settings instance
settings = Settings()

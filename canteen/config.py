from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    database_url: str = 'sqlite+pysqlite:///:memory:'
    session_cookie_name: str = 'canteen_session'
    session_ttl_minutes: int = 30
    session_cookie_secure: bool = False
    session_cookie_samesite: str = 'lax'

    log_level: str = 'INFO'

    super_admin_login_id: str = 'admin01'
    seed_admin_name: str = 'Super Admin'
    seed_admin_email: str | None = 'superadmin@canteen.com'
    seed_admin_password: str = 'superadmin'
    seed_demo_data: bool = False

    gemini_api_key: str | None = None
    gemini_model: str = 'gemini-2.5-flash'
    gemini_api_base_url: str = 'https://generativelanguage.googleapis.com'
    gemini_timeout_seconds: int = 30

    @property
    def database_url_normalized(self) -> str:
        url = self.database_url.strip()
        if url.startswith('postgres://'):
            return 'postgresql+psycopg://' + url[len('postgres://') :]
        if url.startswith('postgresql://'):
            return 'postgresql+psycopg://' + url[len('postgresql://') :]
        return url

    @property
    def database_is_memory(self) -> bool:
        url = self.database_url_normalized
        return url.startswith('sqlite') and (':memory:' in url or url.rstrip('/').endswith('sqlite:'))


settings = Settings()

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSource(BaseModel):
    """One monitored game server and where its player count comes from."""

    id: str
    use_master_list: bool = False
    status_url: Optional[str] = None
    status_headers: dict[str, str] = Field(default_factory=dict)


DEFAULT_SERVERS = [
    ServerSource(id="s1.meta-rp.com:22005", use_master_list=True),
    ServerSource(
        id="s1.metarp.net:22005",
        status_url="http://s1.metarp.net:22010/status",
        status_headers={"x-api-key": "replace-with-your-key"},
    ),
]


class Settings(BaseSettings):
    """Monitor settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Sources
    servers: list[ServerSource] = Field(default_factory=lambda: list(DEFAULT_SERVERS))
    master_url: str = Field(default="https://cdn.rage.mp/master/")
    status_timeout_seconds: float = Field(default=4.0)
    user_agent: str = Field(default="playerstats")

    # Store
    poll_interval_seconds: float = Field(default=60.0)
    history_days: Optional[float] = Field(default=None)
    snapshot_path: str = Field(default="data.json")

    # HTTP
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5173)
    static_dir: str = Field(default="web")

    # Chart client
    api_url: str = Field(default="http://localhost:5173")
    online_data_url: str = Field(default="/onlinedata.json")
    refresh_interval_seconds: float = Field(default=60.0)
    max_chart_points: int = Field(default=180)
    default_range: str = Field(default="month")
    chart_colors: dict[str, str] = Field(
        default_factory=lambda: {
            "s1.meta-rp.com:22005": "#3284ff",
            "s1.metarp.net:22005": "#1aae39",
        }
    )

    # App
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")


# Singleton instance
settings = Settings()

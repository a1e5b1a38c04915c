"""Configuration schema using Pydantic.

Single data model and defaults for msgbridge, persisted to ~/.msgbridge/config.json.
"""

from pathlib import Path

from pydantic import BaseModel, Field, ConfigDict
from pydantic_settings import BaseSettings


MESSAGES_CONTAINER = "~/Library/Containers/com.apple.MobileSMS/Data"


class StoreConfig(BaseModel):
    """Messages database access and change feed."""
    db_path: str = "~/Library/Messages/chat.db"
    watch_debounce_ms: int = 250
    watch_batch_limit: int = 100
    watch_fallback_poll_ms: int = 2000  # re-check even when no file event arrives


class MailboxConfig(BaseModel):
    """File-based single-slot IPC with the helper peer."""
    container_dir: str = MESSAGES_CONTAINER
    command_file: str = ".msgbridge-command.json"
    response_file: str = ".msgbridge-response.json"
    ready_file: str = ".msgbridge-ready"
    poll_interval_ms: int = 50
    command_timeout_seconds: float = 10.0
    ready_timeout_seconds: float = 15.0
    ping_timeout_seconds: float = 2.0
    ready_ttl_seconds: float = 2.0  # skip the readiness ping after a recent answer; 0 pings every call


class PeerConfig(BaseModel):
    """Host app launch with the injected helper library."""
    helper_paths: list[str] = Field(
        default_factory=lambda: [
            ".build/release/msgbridge-helper.dylib",
            ".build/debug/msgbridge-helper.dylib",
            "/usr/local/lib/msgbridge-helper.dylib",
        ]
    )
    host_app_path: str = "/System/Applications/Messages.app/Contents/MacOS/Messages"
    host_process_name: str = "Messages"
    restart_settle_seconds: float = 1.0


class RpcConfig(BaseModel):
    """JSON-RPC server behaviour."""
    auto_read: bool | None = None  # None = enabled when the peer is available
    auto_typing: bool | None = None
    auto_read_delay_seconds: float = 1.0
    typing_poll_interval_seconds: float = 0.35
    chats_default_limit: int = 20
    history_default_limit: int = 50


class WatchdogConfig(BaseModel):
    """Background relauncher driven by imagent log errors."""
    label: str = "com.msgbridge.watchdog"
    launch_agents_dir: str = "~/Library/LaunchAgents"
    cooldown_seconds: float = 300.0
    log_predicate: str = 'process == "imagent"'
    error_patterns: list[str] = Field(
        default_factory=lambda: [
            "Sandbox restriction",
            "XPC.*connection.*invalid",
            "Unable to send to server",
            "PSC out of sync",
            "IMDMessageServicesAgent.*invalid",
        ]
    )


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_enabled: bool = True
    file_level: str = "DEBUG"


class Config(BaseSettings):
    """Root configuration for msgbridge."""
    store: StoreConfig = Field(default_factory=StoreConfig)
    mailbox: MailboxConfig = Field(default_factory=MailboxConfig)
    peer: PeerConfig = Field(default_factory=PeerConfig)
    rpc: RpcConfig = Field(default_factory=RpcConfig)
    watchdog: WatchdogConfig = Field(default_factory=WatchdogConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def db_path(self) -> Path:
        """Expanded path of the Messages database."""
        return Path(self.store.db_path).expanduser()

    @property
    def container_path(self) -> Path:
        return Path(self.mailbox.container_dir).expanduser()

    def resolve_helper_path(self) -> Path | None:
        """First configured helper library that exists on disk."""
        for raw in self.peer.helper_paths:
            path = Path(raw).expanduser()
            if path.exists():
                return path.resolve()
        return None

    model_config = ConfigDict(
        env_prefix="MSGBRIDGE_",
        env_nested_delimiter="__"
    )

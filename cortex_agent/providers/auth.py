"""Bearer token 提供方。

本项目不负责签发 key-pair JWT，只读取外部准备好的 token：
配置中的 auth_token，或 auth_token_file 指向的文件（refresh 时重新读取，
外部签名进程可以定期轮换文件内容）。
"""

from pathlib import Path
from typing import Optional

from cortex_agent.config.settings import settings
from cortex_agent.infrastructure.logging.logger import logger


class SettingsTokenProvider:
    """从配置/文件读取 token，并暴露 loading/error 状态供 UI 观察。"""

    def __init__(self, cfg=settings):
        self._settings = cfg
        self._token: Optional[str] = None
        self.loading = False
        self.error: Optional[str] = None

    def get_token(self) -> Optional[str]:
        if self._token is None:
            return self.refresh()
        return self._token

    def refresh(self) -> Optional[str]:
        self.loading = True
        try:
            self._token = self._load()
        finally:
            self.loading = False
        return self._token

    def _load(self) -> Optional[str]:
        token_file = getattr(self._settings, "auth_token_file", None)
        if token_file:
            path = Path(token_file).expanduser()
            try:
                token = path.read_text(encoding="utf-8").strip()
            except OSError as exc:
                self.error = f"Failed to read token file: {exc}"
                logger.error(self.error, extra={"extra": {"path": str(path)}})
                return None
            self.error = None if token else "Token file is empty"
            return token or None
        token = getattr(self._settings, "auth_token", None)
        self.error = None if token else "Token is not configured"
        return token or None

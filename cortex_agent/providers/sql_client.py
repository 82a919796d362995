"""Snowflake SQL API 客户端（查询执行器）。

一次同步调用 POST {snowflake_url}/api/v2/statements，并区分两类失败：
- 语句仍在异步执行（超过后端同步等待时间）→ AsyncPendingError，由调用方决定是否重试；
- 其他后端错误 → SqlExecutionError。
本组件内部从不重试。
"""

from typing import Any, Dict

import httpx

from cortex_agent.config.settings import settings
from cortex_agent.domain.exceptions import (
    AsyncPendingError,
    SqlExecutionError,
    TransportError,
    ValidationError,
)
from cortex_agent.domain.models import TableData
from cortex_agent.infrastructure.logging.logger import logger
from cortex_agent.providers.registry import (
    ASYNC_PENDING_MARKER,
    SQL_SUCCESS_CODES,
    auth_headers,
    endpoint,
    statement_parameters,
)


class SnowflakeSqlClient:
    name = "snowflake-sql"

    def __init__(self, cfg=settings):
        self._settings = cfg

    def execute(self, statement: str, auth_token: str) -> TableData:
        base = getattr(self._settings, "snowflake_url", "")
        if not base:
            raise ValidationError(code="MISSING_URL", message="SNOWFLAKE_URL not set")
        payload = self._build_payload(statement)
        headers = auth_headers(auth_token)
        headers["User-Agent"] = self._settings.user_agent
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    endpoint(base, self._settings.statements_path),
                    json=payload,
                    headers=headers,
                )
        except httpx.RequestError as e:
            raise TransportError(code="TRANSPORT_ERROR", message="Failed to execute SQL query", detail=str(e))
        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            raise SqlExecutionError(
                code="SQL_EXEC_ERROR",
                message=f"SQL execution error: HTTP {resp.status_code}",
                http_status=resp.status_code,
            )
        return self._parse_response(resp.status_code, data)

    def _build_payload(self, statement: str) -> Dict[str, Any]:
        return {
            "statement": statement,
            "parameters": statement_parameters(self._settings.sql_timezone),
        }

    @staticmethod
    def _parse_response(status_code: int, data: Dict[str, Any]) -> TableData:
        code = data.get("code")
        message = data.get("message") or ""
        if ASYNC_PENDING_MARKER in message or status_code == 202:
            logger.warning(
                "Statement still running",
                extra={"extra": {"statement_handle": data.get("statementHandle"), "code": code}},
            )
            raise AsyncPendingError(
                code="ASYNC_PENDING",
                message="SQL execution took too long to respond. Please try again.",
                statement_handle=data.get("statementHandle"),
            )
        if status_code >= 400 or (code and str(code) not in SQL_SUCCESS_CODES):
            raise SqlExecutionError(
                code="SQL_EXEC_ERROR",
                message=f"SQL execution error: {message or code or status_code}",
                http_status=status_code,
                backend_code=code,
            )
        return TableData.from_response(data)

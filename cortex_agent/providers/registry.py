"""Snowflake 端点与固定请求参数。

SQL 结果的输出格式在这里集中固定，不依赖后端会话的默认设置，
这样同一条语句在不同账户/会话下得到的日期、时间、二进制列格式一致。
"""

from typing import Dict, Mapping


AUTH_TOKEN_TYPE = "KEYPAIR_JWT"

ASYNC_PENDING_MARKER = "Asynchronous execution in progress."

# SQL API 成功时同样返回 code 字段，这些不视为错误
SQL_SUCCESS_CODES = frozenset({"090001"})

SQL_OUTPUT_FORMATS: Mapping[str, str] = {
    "BINARY_OUTPUT_FORMAT": "HEX",
    "DATE_OUTPUT_FORMAT": "YYYY-Mon-DD",
    "TIME_OUTPUT_FORMAT": "HH24:MI:SS",
    "TIMESTAMP_LTZ_OUTPUT_FORMAT": "",
    "TIMESTAMP_NTZ_OUTPUT_FORMAT": "YYYY-MM-DD HH24:MI:SS.FF3",
    "TIMESTAMP_TZ_OUTPUT_FORMAT": "",
    "TIMESTAMP_OUTPUT_FORMAT": "YYYY-MM-DD HH24:MI:SS.FF3 TZHTZM",
}


def statement_parameters(timezone: str) -> Dict[str, str]:
    """返回一次语句调用的完整参数集（输出格式 + 时区）。"""

    params = dict(SQL_OUTPUT_FORMATS)
    params["TIMEZONE"] = timezone
    return params


def auth_headers(token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "X-Snowflake-Authorization-Token-Type": AUTH_TOKEN_TYPE,
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


def endpoint(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"

"""统一业务异常模型。

所有跨模块抛出的错误都继承自 BusinessError：
- code: 机器可读错误码，便于日志检索。
- message: 用户可读的提示文本，编排器会原样作为通知展示。

除 UnexpectedShapeError 与 ExchangeCancelled 外，其余错误都会终止当前 exchange。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "ASYNC_PENDING"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 detail、statement_handle 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class AuthMissingError(BusinessError):
    """提交时没有可用的 bearer token，在任何网络调用之前中止。"""


class TransportError(BusinessError):
    """网络层错误：连接失败、流在终止标记之前被关闭、帧无法解码等。"""


class RemoteError(BusinessError):
    """远端返回结构化错误（非 2xx 响应或带 code 的事件帧）。"""


class AsyncPendingError(BusinessError):
    """SQL 语句超过后端同步等待时间，仍在异步执行中。"""


class SqlExecutionError(BusinessError):
    """SQL 语句执行失败（后端报告的其他错误）。"""


class UnexpectedShapeError(BusinessError):
    """内容增量的 type 不在已知标签内；记录并提示，但不终止 exchange。"""


class ExchangeCancelled(BusinessError):
    """exchange 被新的提交或组件销毁取消，不属于错误通知。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""

# mypy: disable-error-code="no-untyped-def, assignment, var-annotated"
"""
StoreFlow 日志系统
- structlog 输出 JSON，字段：ts, level, trace_id, user_id, action, err
- 收货地址、卡号、邮箱等 PII 在输出前脱敏
"""
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Optional
from contextvars import ContextVar

import structlog
from structlog.processors import JSONRenderer, TimeStamper, add_log_level

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

# 整个值都不应出现在日志里的字段
MASKED_KEYS = frozenset({"shipping_address", "address", "card_number", "authorization", "admin_token"})

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "uvicorn.access", "sqlalchemy.engine", "aiosqlite")


class PIIMaskingProcessor:
    """PII 脱敏处理器"""

    PATTERNS = (
        # 卡号：只保留后4位
        (re.compile(r"\b(?:\d{4}[ -]?){3}(\d{4})\b"), r"****\1"),
        # 邮箱：保留首字母和域名
        (re.compile(r"([a-zA-Z0-9])[a-zA-Z0-9._-]*@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})"), r"\1***@\2"),
        # 巴西手机号 +55 11 9xxxx-xxxx
        (re.compile(r"(\+\d{1,3}\s?\d{2})\s?\d{4,5}-?(\d{4})"), r"\1 ****-\2"),
        (re.compile(r"(token|secret|password)[\"']?\s*[:=]\s*[\"']?([^\"'\s,}]+)", re.IGNORECASE), r"\1=***MASKED***"),
    )

    def __call__(self, logger, method_name, event_dict):
        return {key: self._mask(key, value) for key, value in event_dict.items()}

    def _mask(self, key: str, value: Any) -> Any:
        if key in MASKED_KEYS and value:
            return "***MASKED***"
        if isinstance(value, str):
            for pattern, replacement in self.PATTERNS:
                value = pattern.sub(replacement, value)
            return value
        if isinstance(value, dict):
            return {k: self._mask(k, v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._mask(key, item) for item in value]
        return value


class StoreFlowProcessor:
    """补充请求上下文字段，并统一字段命名"""

    def __call__(self, logger, method_name, event_dict):
        event_dict["ts"] = datetime.now(timezone.utc).isoformat()

        if trace_id := trace_id_var.get():
            event_dict["trace_id"] = trace_id
        if user_id := user_id_var.get():
            event_dict.setdefault("user_id", user_id)

        if "event" in event_dict:
            event_dict["action"] = event_dict.pop("event")
        if "exception" in event_dict:
            event_dict["err"] = str(event_dict.pop("exception"))

        return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "json", enable_pii_masking: bool = True) -> None:
    """配置 structlog 和标准 logging，统一输出到 stdout"""
    level = getattr(logging, log_level.upper())

    processors = [
        TimeStamper(fmt="iso"),
        add_log_level,
        structlog.processors.format_exc_info,
        StoreFlowProcessor(),
    ]
    if enable_pii_masking:
        processors.append(PIIMaskingProcessor())
    processors.append(JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # structlog 已经渲染好整行，这里只输出 message
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取日志记录器"""
    return structlog.get_logger(name)


class LogContext:
    """设置请求级别的日志上下文，退出时恢复"""

    def __init__(self, trace_id: Optional[str] = None, user_id: Optional[str] = None):
        self.trace_id = trace_id
        self.user_id = user_id
        self._tokens = []

    def __enter__(self):
        if self.trace_id:
            self._tokens.append(trace_id_var.set(self.trace_id))
        if self.user_id:
            self._tokens.append(user_id_var.set(self.user_id))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for token in reversed(self._tokens):
            token.var.reset(token)

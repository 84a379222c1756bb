from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class Notifier:
    """화면 토스트로 나가는 알림 창구. UI 쪽에서 상속해 구현."""

    def success(self, message: str) -> None:
        raise NotImplementedError

    def error(self, message: str) -> None:
        raise NotImplementedError

    def warning(self, message: str) -> None:
        raise NotImplementedError

    def info(self, message: str) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """UI 없이 돌릴 때(워커 등) 로그로만 남김."""

    def success(self, message: str) -> None:
        logger.info(f"[알림] {message}")

    def error(self, message: str) -> None:
        logger.error(f"[알림] {message}")

    def warning(self, message: str) -> None:
        logger.warning(f"[알림] {message}")

    def info(self, message: str) -> None:
        logger.info(f"[알림] {message}")

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from typing import Any

from dotenv import load_dotenv

from orderdesk.core.config import settings
from orderdesk.core.session import SessionContext
from orderdesk.services.dashboard import DashboardSession

load_dotenv()  # RESTAURANT_ID, API_TOKEN


async def run_dashboard_loop(
    session: SessionContext,
    *,
    report_interval_s: float = 60.0,
    **dashboard_kwargs: Any,
) -> None:
    """대시보드 동기화 루프.

    - 주문 목록 로드 + 실시간 채널 연결
    - report_interval_s 마다 미결제/결제 건수, 매출 로그
    - 채널이 재연결을 포기하면 종료
    """
    async with DashboardSession(session, **dashboard_kwargs) as d:
        while d.channel.running:
            counts = d.tab_counts()
            logging.info(
                f"[워커] 미결제 {counts.unpaid}건 / 결제 {counts.paid}건 / "
                f"대기 {d.pending_count}건 / 매출 {d.total_revenue():,.0f}"
            )
            try:
                await asyncio.wait_for(d.channel.wait_closed(), timeout=report_interval_s)
            except asyncio.TimeoutError:
                continue
        logging.error("[워커] 실시간 채널 종료됨")


def main() -> None:
    parser = argparse.ArgumentParser(description="restaurant dashboard order sync worker")
    parser.add_argument("--restaurant-id", default=os.getenv("RESTAURANT_ID"), required=os.getenv("RESTAURANT_ID") is None)
    parser.add_argument("--token", default=os.getenv("API_TOKEN"))
    parser.add_argument("--report-interval", type=float, default=60.0)
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    session = SessionContext(restaurant_id=args.restaurant_id, token=args.token)
    try:
        asyncio.run(run_dashboard_loop(session, report_interval_s=args.report_interval))
    except KeyboardInterrupt:
        logging.info("[워커] 종료")


if __name__ == "__main__":
    main()

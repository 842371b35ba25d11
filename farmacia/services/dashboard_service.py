"""
Dashboard service.
Provides aggregated sales and inventory figures for the dashboard and
reports views. Pure reads; nothing is cached.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from farmacia.stores.base import PosStore
from farmacia.stores.records import Product, Sale, TopProduct


@dataclass(frozen=True)
class DashboardStats:
    today_revenue: Decimal
    today_transaction_count: int
    total_active_products: int
    low_stock_count: int
    total_customers: int

    def to_dict(self) -> dict:
        return {
            'today_revenue': str(self.today_revenue),
            'today_transaction_count': self.today_transaction_count,
            'total_active_products': self.total_active_products,
            'low_stock_count': self.low_stock_count,
            'total_customers': self.total_customers
        }


@dataclass(frozen=True)
class DailySales:
    day: date
    revenue: Decimal
    transactions: int


def get_today_datetime_range(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Get datetime range for today (local server time).

    Returns:
        tuple: (start_dt, end_dt) where start is today 00:00:00 and end is
        tomorrow 00:00:00 (exclusive)
    """
    today = (now or datetime.now()).date()
    start_dt = datetime.combine(today, time.min)
    end_dt = start_dt + timedelta(days=1)

    return start_dt, end_dt


def today_sales(store: PosStore, now: Optional[datetime] = None) -> List[Sale]:
    """All sales created today, newest first."""
    start_dt, end_dt = get_today_datetime_range(now)
    return store.list_sales_between(start_dt, end_dt)


def dashboard_stats(store: PosStore, now: Optional[datetime] = None) -> DashboardStats:
    """
    Get the dashboard figures.

    Four independent reads: today's sales summary, active products,
    low-stock products and customers.
    """
    start_dt, end_dt = get_today_datetime_range(now)
    revenue, transactions = store.sales_summary_between(start_dt, end_dt)

    return DashboardStats(
        today_revenue=revenue,
        today_transaction_count=transactions,
        total_active_products=store.count_active_products(),
        low_stock_count=store.count_low_stock_products(),
        total_customers=store.count_customers()
    )


def top_products(store: PosStore, limit: int = 10) -> List[TopProduct]:
    """
    Get top selling products based on total quantity sold.

    Derived from every committed sale item (not only today's); ties are
    broken by product code.
    """
    if limit <= 0:
        return []
    return store.top_sold_products(limit)


def low_stock(store: PosStore) -> List[Product]:
    """Active products at or below their minimum, lowest stock first."""
    return store.list_low_stock_products()


def sales_by_day(store: PosStore, days: int = 7, now: Optional[datetime] = None) -> List[DailySales]:
    """Revenue and transaction count per day for the last `days` days, oldest first."""
    start_today, _ = get_today_datetime_range(now)
    result = []
    for offset in range(days - 1, -1, -1):
        start_dt = start_today - timedelta(days=offset)
        end_dt = start_dt + timedelta(days=1)
        revenue, transactions = store.sales_summary_between(start_dt, end_dt)
        result.append(DailySales(day=start_dt.date(), revenue=revenue, transactions=transactions))
    return result

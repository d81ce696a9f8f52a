"""
Keeper: scanners, retry policy, funding/oracle upkeep, cycle runner, scheduler.
"""

from keeper.funding import FundingApplier
from keeper.oracle import OracleUpdater
from keeper.retry import RetryPolicy
from keeper.runner import CycleRunner, SweepReport
from keeper.scanners import OrderScan, OrderScanner, PositionScanner
from keeper.scheduler import KeeperScheduler
from keeper.stats import KeeperStats

__all__ = [
    "CycleRunner",
    "FundingApplier",
    "KeeperScheduler",
    "KeeperStats",
    "OracleUpdater",
    "OrderScan",
    "OrderScanner",
    "PositionScanner",
    "RetryPolicy",
    "SweepReport",
]

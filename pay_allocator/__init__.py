"""
Pay Period Allocator - Source Package

A household shared-finance engine: income and expenses at any recurring
frequency, shared accounts, per-user expense splits and the proposal
protocol co-owners use to agree on those splits.

DESIGN PRINCIPLES:
1. Calculations are pure - frequency, split and aggregation code never touch storage
2. Each user writes only their own split row
3. Co-owners change each other's share by proposal, never directly
4. Every write is audited
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Pay Period Allocator Team"

"""
Sleeve allocation core (sleeve-pilot)

Turns a NAV snapshot, a market-regime classification and current holdings
into a bounded, auditable set of orders: a core ETF sleeve rebalanced against
drift, and two mutually exclusive option overlays (insurance puts, growth
calls) funded from a fixed reserve pool. Every order passes a risk battery
before it is proposed.

Orders are proposals only. Transmission to a broker happens elsewhere.
"""

__version__ = "0.1.0"
__author__ = "Sleeve Pilot Team"

"""
Gym Membership Service - Routers Package

FastAPI route handlers.

Routers:
- plans: Membership plan catalog (browse, staff administration)
- membership: Current membership, history, access decision, balance, auto-renew, signup
- plan_change: Calculate / initiate / confirm plan changes
- subscription: Pause, resume, cancel, reactivate
"""

from app.routers import (
    plans,
    membership,
    plan_change,
    subscription,
)

__all__ = [
    "plans",
    "membership",
    "plan_change",
    "subscription",
]

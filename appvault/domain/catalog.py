"""
Default catalog written once when the remote collection is first seen empty.
"""
from __future__ import annotations

from typing import List

from appvault.domain.models import AppDraft, Category

SEED_CATALOG: List[AppDraft] = [
    AppDraft(
        name="GanttFlow",
        url="https://ganttflow.vercel.app",
        description="Project schedule management with multi-phase Gantt charts, task tracking, and export.",
        category=Category.CRE,
        image="https://images.unsplash.com/photo-1611532736597-de2d4265fba3?w=600&q=80",
    ),
    AppDraft(
        name="CRE Project Manager",
        url="https://cre-pm.vercel.app",
        description="Full construction project tracker with RFIs, submittals, change orders, and budgets.",
        category=Category.CRE,
        image="https://images.unsplash.com/photo-1486325212027-8081e485255e?w=600&q=80",
    ),
    AppDraft(
        name="Bitcoin Tracker",
        url="https://btc-tracker.vercel.app",
        description="Trade entry, P&L analytics, and performance grading for Bitcoin positions.",
        category=Category.FINANCE,
        image="https://images.unsplash.com/photo-1621761191319-c6fb62004040?w=600&q=80",
    ),
    AppDraft(
        name="Budget Manager",
        url="https://budget-app.vercel.app",
        description="Household budget tracker with expense categories and monthly summaries.",
        category=Category.FINANCE,
        image="https://images.unsplash.com/photo-1554224155-8d04cb21cd6c?w=600&q=80",
    ),
    AppDraft(
        name="Medina Family Tree",
        url="https://medina-family.vercel.app",
        description="Interactive genealogy app with birthday tracking and authentication.",
        category=Category.FAMILY,
        image="https://images.unsplash.com/photo-1529156069898-49953e39b3ac?w=600&q=80",
    ),
    AppDraft(
        name="Wag & Wander",
        url="https://wagwander.vercel.app",
        description="Pet care business management: bookings, client profiles, and scheduling.",
        category=Category.PET_CARE,
        image="https://images.unsplash.com/photo-1548199973-03cce0bbc87b?w=600&q=80",
    ),
]


__all__ = ["SEED_CATALOG"]

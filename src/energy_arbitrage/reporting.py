"""Read-only reports over the engine state for on-demand queries."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
import time

import numpy as np

from . import __version__
from .engine import ArbitrageEngine
from .models import EngineSnapshot, OptimizationRecord

STATUS_TEXT = "Smart Energy Arbitrage Backend Running"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def status_report(engine: ArbitrageEngine, snapshot: Optional[EngineSnapshot] = None) -> Dict[str, Any]:
    """Backend status with headline figures."""
    snapshot = snapshot or engine.get_snapshot()
    market = snapshot.market
    last = snapshot.last_optimization
    return {
        "status": STATUS_TEXT,
        "timestamp": _now(),
        "version": __version__,
        "engine_status": engine.status.value,
        "current_stats": {
            "total_profit_per_hour": snapshot.total_profit,
            "active_sites": len(snapshot.sites),
            "connected_clients": snapshot.connected_observers,
            "btc_price": market.btc_price if market else None,
            "ai_demand_level": market.ai_demand_level if market else None,
            "active_dr_event": snapshot.active_dr_event is not None,
            "dr_events_this_year": snapshot.dr_events_this_year
        },
        "last_optimization": last.timestamp.isoformat() if last else None
    }


def dashboard_report(engine: ArbitrageEngine) -> Dict[str, Any]:
    """Everything a dashboard needs in one payload."""
    snapshot = engine.get_snapshot(history=0)
    return {
        "total_profit_per_hour": snapshot.total_profit,
        "active_sites": len(snapshot.sites),
        "market_data": snapshot.market.to_dict() if snapshot.market else {},
        "sites_summary": {site_id: state.to_dict() for site_id, state in snapshot.sites.items()},
        "demand_response": {
            "active_event": snapshot.active_dr_event.to_dict() if snapshot.active_dr_event else None,
            "events_this_year": snapshot.dr_events_this_year
        }
    }


def demand_response_report(engine: ArbitrageEngine) -> Dict[str, Any]:
    """Demand-response status, recent events and per-site commitments."""
    snapshot = engine.get_snapshot(history=0)
    return {
        "active_event": snapshot.active_dr_event.to_dict() if snapshot.active_dr_event else None,
        "events_this_year": snapshot.dr_events_this_year,
        "max_events_per_year": engine.config.demand_response.max_events_per_year,
        "recent_events": [event.to_dict() for event in snapshot.recent_dr_events],
        "site_commitments": {
            site.site_id: {
                "name": site.name,
                "commitment_percent": site.dr_commitment_percent,
                "annual_payment": site.dr_annual_payment,
                "committed_capacity_mw": site.committed_capacity_mw
            }
            for site in engine.config.sites
        }
    }


def history_report(engine: ArbitrageEngine, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Most recent optimization records, oldest first."""
    limit = engine.config.scheduler.report_history if limit is None else limit
    return [record.to_dict() for record in engine.get_snapshot(history=limit).history]


def health_report(engine: ArbitrageEngine) -> Dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": _now(),
        "uptime": time.monotonic() - engine.created_at,
        "connected_clients": engine.broadcaster.observer_count
    }


def profit_summary(history: Sequence[OptimizationRecord]) -> Dict[str, Any]:
    """Aggregate statistics over a window of optimization records."""
    if not history:
        return {"cycles": 0}
    
    profits = np.array([record.total_profit for record in history])
    mode_counts: Dict[str, int] = {}
    for record in history:
        for state in record.sites.values():
            mode = state.operation_mode.value
            mode_counts[mode] = mode_counts.get(mode, 0) + 1
    total_decisions = sum(mode_counts.values())
    
    return {
        "cycles": len(history),
        "mean_profit": float(np.mean(profits)),
        "min_profit": float(np.min(profits)),
        "max_profit": float(np.max(profits)),
        "std_profit": float(np.std(profits)),
        "dr_cycles": sum(1 for record in history if record.active_dr_event is not None),
        "mode_share": {mode: count / total_decisions for mode, count in mode_counts.items()}
    }

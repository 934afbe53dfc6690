"""
Basic usage example of the energy arbitrage engine.
This example demonstrates core functionality including:
- Configuring sites and logging
- Observing pushed updates
- Triggering and ending a demand-response event
- Querying reports
"""

import time
from pathlib import Path

from energy_arbitrage import ArbitrageEngine, EngineConfig
from energy_arbitrage.events import Event, EventType
from energy_arbitrage.reporting import status_report, demand_response_report, profit_summary


def print_event(event: Event) -> None:
    """Print a short line per pushed update."""
    if event.type == EventType.OPTIMIZATION_UPDATE:
        payload = event.payload
        dr = payload["active_dr_event"]
        print(f"[{event.type.value}] total ${payload['current_total_profit']:,.2f}/h"
              f" | DR: {dr['reason'] if dr else 'none'}")
    else:
        print(f"[{event.type.value}]")


def main():
    config_path = Path(__file__).parent / "sites.yaml"
    config = EngineConfig.load_from_file(config_path)
    # compress time so the example finishes quickly
    config.scheduler.cycle_interval = 1.0
    config.demand_response.seconds_per_hour = 2.0
    config.setup_logging()
    
    engine = ArbitrageEngine(config)
    engine.broadcaster.subscribe(print_event)
    
    print(f"Engine: {config.name}")
    for site in config.sites:
        print(f"  {site.name} ({site.location}): {site.capacity_mw} MW, "
              f"{site.dr_commitment_percent}% DR commitment")
    
    with engine:
        engine.welcome("example-observer")
        time.sleep(3)
        
        print("\nTriggering demand-response event on finland-1...")
        event = engine.trigger_dr({
            "reason": "Grid Emergency",
            "duration_hours": 1,
            "affected_sites": ["finland-1"]
        })
        print(f"  {event.id}: shedding {event.capacity_reduced_mw:.0f} MW, "
              f"~${event.estimated_profit_impact:,.0f}/h forgone")
        
        state = engine.get_snapshot().sites["finland-1"]
        print(f"  finland-1 now in {state.operation_mode.value}: "
              f"AI {state.power_allocation.ai_mw:.0f} MW, "
              f"bitcoin {state.power_allocation.bitcoin_mw:.0f} MW")
        
        # the event auto-ends after one compressed hour
        time.sleep(3)
        engine.farewell("example-observer", "example finished")
    
    status = status_report(engine)
    print("\nStatus:", status["current_stats"])
    print("DR events this year:", demand_response_report(engine)["events_this_year"])
    
    summary = profit_summary(engine.get_snapshot().history)
    print(f"Cycles: {summary['cycles']}, mean ${summary['mean_profit']:,.2f}/h")
    print("Mode share:", {mode: f"{share:.0%}" for mode, share in summary["mode_share"].items()})


if __name__ == "__main__":
    main()

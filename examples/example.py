"""Example usage of JourneyReconciler."""

import json
import logging
import sys
from pathlib import Path

# Add src to path so we can import livejourney
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from livejourney import JourneyReconciler, Plan, ServiceConfig

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def print_journey_update(plan_path: str, language: str = "en"):
    """
    Reconcile a stored plan against the live feeds and display the result.

    Args:
        plan_path: JSON file with either a plan or the planner's {"routes": [...]} response.
        language: "en" or "ar".
    """
    print(f"\n{'='*70}")
    print(f"Reconciling journey: {plan_path}")
    print(f"{'='*70}\n")

    try:
        with open(plan_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        plan = Plan.from_planner_response(data) if "routes" in data else Plan.from_dict(data)

        reconciler = JourneyReconciler(config=ServiceConfig.from_env())
        update = reconciler.get_journey_update(plan, language=language)

        print(f"Planned total: {plan.total_minutes} min")
        print(f"Live total:    {update.new_total_minutes} min")
        print(f"Last updated:  {update.last_updated.strftime('%H:%M:%S')}\n")

        print("SEGMENTS:")
        print("-" * 70)
        for segment in update.plan.segments:
            if segment.is_walking:
                print(f"  Walk {segment.duration_minutes:.0f} min ({segment.distance_meters:.0f} m)")
                continue

            route = f"{segment.boarding_station} → {segment.alighting_station}"
            print(f"\n  {segment.kind.value.title()} {segment.line}: {route}")
            status = segment.status.value if segment.status else "-"
            if segment.wait_minutes is not None:
                print(f"    [{status}] wait {segment.wait_minutes} min, towards {segment.refined_terminus}")
                if segment.upcoming_arrivals:
                    later = ", ".join(str(m) for m in segment.upcoming_arrivals)
                    print(f"    then in {later} min")
            else:
                print(f"    [{status}] no live data, planned ride {segment.duration_minutes:.0f} min")

        print("\n" + "=" * 70)
        print("SERVICE ALERTS:")
        print("-" * 70)
        if update.alerts:
            for alert in update.alerts:
                line = f"Line {alert.affected_line_number}" if alert.affected_line_number else "General"
                print(f"\n{line}: {alert.display_title}")
                print(f"  {alert.message}")
        else:
            print("  No service alerts")

        print("\n" + "=" * 70 + "\n")

    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Failed to reconcile journey: {e}", exc_info=True)
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python examples/example.py PLAN.json [en|ar]")
        sys.exit(2)

    lang = sys.argv[2] if len(sys.argv) > 2 else "en"
    print_journey_update(sys.argv[1], lang)

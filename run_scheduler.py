"""
Main Execution Script for the Therapy Scheduling Engine.
Builds (or loads cached) demo data, generates a schedule, previews and runs a
freeze, prints a report and exports the result for the dashboard.
"""

import json
import logging
from datetime import date, time, timedelta
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from generators.data_factory import DemoDataFactory
from models import (
    OptimizationRule,
    Room,
    ScheduledSession,
    ScheduleTemplate,
    SchedulingRequest,
    Subscription,
    TherapistAvailability,
    TherapistCapacity,
    TimeWindow
)
from scheduler import FreezeCoordinator, KeyedLockRegistry, SchedulerConfig, SchedulingEngine, SchedulingError
from stores.memory import in_memory_bundle

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("Main")

# --- CONFIGURATION ---
CACHE_FILENAME = "demo_data.json"
EXPORT_FILENAME = "schedule_export.json"
USE_CACHE = True  # Set to False to force regeneration
# ---------------------

MODEL_TYPES = {
    "availability": TherapistAvailability,
    "capacities": TherapistCapacity,
    "rooms": Room,
    "templates": ScheduleTemplate,
    "subscriptions": Subscription,
    "rules": OptimizationRule,
    "sessions": ScheduledSession,
}


def save_debug_data(data: Dict[str, List], filename: str) -> None:
    """Helper to save generated data so runs are reproducible from disk."""
    serializable = {key: [item.model_dump(mode='json') for item in items] for key, items in data.items()}
    with open(filename, 'w') as f:
        json.dump(serializable, f, indent=2, ensure_ascii=False)
    logger.info(f"💾 Saved demo data to {filename}")


def load_cached_data(filename: str) -> Optional[Dict[str, List]]:
    """
    Helper to load JSON data and reconstruct Pydantic objects.
    Invalid rows are skipped with a warning.
    """
    try:
        with open(filename, 'r') as f:
            raw = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        logger.warning(f"⚠️ Cache file {filename} not found or invalid. Falling back to the factory.")
        return None

    logger.info(f"📂 Loading cached data from {filename}...")
    data: Dict[str, List] = {}
    for key, model_class in MODEL_TYPES.items():
        items = []
        for i, item in enumerate(raw.get(key, [])):
            try:
                items.append(model_class(**item))
            except PydanticValidationError as e:
                logger.warning(f"Skipping invalid {key} row {i}: {e.error_count()} errors")
        data[key] = items

    logger.info(f"✅ Cache Loaded: {len(data['availability'])} availability rows, "
                f"{len(data['subscriptions'])} subscriptions.")
    return data


def export_schedule(result, freeze_result, filename: str) -> None:
    """Serializes the generated schedule (grouped by date) and the freeze outcome."""
    logger.info(f"💾 Exporting schedule to {filename}...")
    data = {"schedule": {}, "statistics": {}, "suggestions": [], "warnings": [], "freeze": None}

    for session in result.generated_sessions:
        data["schedule"].setdefault(session.session_date.isoformat(), []).append(session.model_dump(mode='json'))
    data["statistics"] = result.model_dump(mode='json', include={"statistics"})["statistics"]
    data["suggestions"] = [s.model_dump(mode='json') for s in result.suggestions]
    data["warnings"] = [w.model_dump() for w in result.warnings]
    if freeze_result is not None:
        data["freeze"] = freeze_result.model_dump(mode='json')

    with open(filename, 'w') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    logger.info("✅ Schedule exported.")


def main():
    logger.info("🚀 Starting Therapy Scheduling Engine demo...")
    start_date = date.today()

    # --- PHASE 1: DATA ACQUISITION (Cache vs. Factory) ---
    data = load_cached_data(CACHE_FILENAME) if USE_CACHE else None
    if not data:
        data = DemoDataFactory(seed=42, start_date=start_date).generate_all()
        save_debug_data(data, CACHE_FILENAME)

    stores = in_memory_bundle(
        subscriptions=data["subscriptions"],
        sessions=data["sessions"],
        availability=data["availability"],
        capacities=data["capacities"],
        rooms=data["rooms"],
        rules=data["rules"],
        templates=data["templates"],
    )
    config = SchedulerConfig.from_env()
    locks = KeyedLockRegistry()
    engine = SchedulingEngine(stores, config, locks)
    coordinator = FreezeCoordinator(stores, config, locks)

    subscription = data["subscriptions"][0]
    begin = max(start_date, subscription.start_date)

    # --- PHASE 2: SCHEDULE GENERATION ---
    logger.info("\n--- Phase 2: Schedule Generation ---")
    request = SchedulingRequest(
        subscription_id=subscription.id,
        start_date=begin,
        end_date=begin + timedelta(days=55),
        total_sessions=16,
        session_duration=45,
        sessions_per_week=2,
        preferred_days=[0, 2],
        avoid_days=[5, 6],
        preferred_times=[TimeWindow(start_time=time(9, 0), end_time=time(13, 0))],
        flexibility_score=60,
    )
    try:
        result = engine.generate_optimized_schedule(request)
    except SchedulingError as e:
        logger.error(f"❌ Generation failed: {e.message}")
        return

    print("\n" + "=" * 50)
    print("📊 GENERATION REPORT")
    print("=" * 50)
    print(f"Sessions placed:      {len(result.generated_sessions)}/{result.total_sessions}")
    print(f"Optimization score:   {result.optimization_score:.1f}")
    print(f"Preference match:     {result.preference_match_score:.1f}")
    print(f"Average gap (days):   {result.average_gap_days}")
    print(f"Candidate pool:       {result.candidate_pool_size}")
    print(f"Generation time (ms): {result.generation_time_ms:.1f}")

    stats = result.statistics
    if stats.get("date_range"):
        first, last = stats["date_range"]
        print(f"Date range:           {first} -> {last}")
    print(f"Sessions per therapist: {stats.get('therapist_usage_count', {})}")
    if stats.get("near_misses"):
        print(f"Near misses:          {stats['near_misses']} {stats.get('failure_breakdown', {})}")
    for warning in result.warnings:
        print(f"⚠️  {warning}")
    for suggestion in result.suggestions:
        print(f"💡 {suggestion.session_date} {suggestion.start_time} with {suggestion.therapist_id} "
              f"(blocked by {suggestion.blocking_conflict.value})")

    # --- PHASE 3: FREEZE ---
    logger.info("\n--- Phase 3: Freeze & Reschedule ---")
    freeze_start = begin + timedelta(days=7)
    freeze_end = freeze_start + timedelta(days=6)
    freeze_result = None
    try:
        preview = coordinator.preview_freeze(subscription.id, freeze_start, freeze_end)
        print(f"\n🧊 Freeze preview: {preview.affected_sessions_count} sessions affected, "
              f"new end date {preview.new_end_date}, {preview.conflicts_count} conflicts")

        freeze_result = coordinator.freeze_subscription(
            subscription.id, freeze_start, freeze_end, reason="Family travel", actor_id="demo"
        )
        print(f"🧊 Frozen until {freeze_end}: {len(freeze_result.rescheduled)} rescheduled, "
              f"{len(freeze_result.pending_conflicts)} pending, credit "
              f"{freeze_result.billing_adjustment.amount} {freeze_result.billing_adjustment.currency}")
        for pending in freeze_result.pending_conflicts:
            print(f"❌ {pending.session_date} {pending.start_time}: {pending.reason}")
    except SchedulingError as e:
        logger.error(f"❌ Freeze failed: {e.message}")

    # --- PHASE 4: EXPORT ---
    export_schedule(result, freeze_result, EXPORT_FILENAME)
    print("\n✅ Demo Complete.")


if __name__ == "__main__":
    main()

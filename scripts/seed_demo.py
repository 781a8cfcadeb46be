#!/usr/bin/env python3
"""
Seed a demo tenant: profile, stockpiles filled by a haul shift, and a few days of
mix batches and crush runs walked through their full lifecycle.

Every write goes through the kernel's action boundary, so the resulting
event log is exactly what the plant would have produced.

Usage:
  python3 scripts/seed_demo.py [--config-id default] [--db-url URL]
                               [--days N] [--reset]

The database URL defaults to the configuration set's (or
BRICKWORKS_DATABASE_URL when set).  Batch codes are fixed (MIX-001, CR-001, ...),
so re-running against a seeded database needs --reset.
"""

import argparse
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEMO_TENANT_ID = UUID("00000000-0000-4000-8000-00000000d3e0")
DEMO_ACTOR_ID = UUID("00000000-0000-4000-8000-0000000000a1")

STOCKPILES = (
    {"code": "SP-CLAY", "name": "Red clay", "location": "North yard", "material_type": "clay"},
    {"code": "SP-SHALE", "name": "Shale", "location": "East bay", "material_type": "shale"},
)


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed a demo tenant through the lifecycle actions")
    p.add_argument("--config-id", default="default", help="Configuration set id (default: 'default')")
    p.add_argument("--db-url", default=None, help="Database URL (default: from configuration)")
    p.add_argument("--days", type=int, default=3, help="Production days to simulate (default: 3)")
    p.add_argument("--reset", action="store_true", help="Drop and recreate all tables first")
    return p.parse_args()


def _require(result, what: str):
    if not result.ok:
        raise SystemExit(f"  FAILED: {what}: {result.error} ({result.code})")
    return result.value


def main() -> int:
    args = _parse_args()
    if args.days < 1:
        print("  --days must be at least 1", file=sys.stderr)
        return 2

    from brickworks_config import get_active_config
    from brickworks_kernel.db.engine import (
        create_tables,
        drop_tables,
        get_session,
        init_engine_from_url,
    )
    from brickworks_kernel.db.upsert import insert_if_absent
    from brickworks_kernel.domain.roles import Role
    from brickworks_kernel.logging_config import configure_logging
    from brickworks_kernel.models import Profile
    from brickworks_kernel.services import (
        AvailabilityChecker,
        PlantActions,
        ProfileActorResolver,
    )

    config = get_active_config(args.config_id)
    configure_logging(level=config.logging.level, json_output=config.logging.json)
    db_url = args.db_url or config.database.url

    print(f"  [1/5] Connecting to {db_url.split('@')[-1]}...")
    init_engine_from_url(
        db_url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    pools = tuple(config.pools.values())
    if args.reset:
        drop_tables(pools)
    create_tables(pools)

    session = get_session()
    try:
        print("  [2/5] Ensuring demo profile...")
        insert_if_absent(
            session,
            Profile,
            ("id",),
            {
                "id": DEMO_ACTOR_ID,
                "tenant_id": DEMO_TENANT_ID,
                "role": Role.ADMIN.value,
                "full_name": "Demo Operator",
                "is_platform_admin": False,
            },
        )
        session.commit()

        actions = PlantActions(
            session,
            ProfileActorResolver(session, DEMO_ACTOR_ID),
            config.stages,
            config.pools,
        )

        print("  [3/5] Creating stockpiles and hauling opening stock...")
        stockpile_ids = {}
        for entry in STOCKPILES:
            result = _require(actions.create_stockpile(entry), f"create {entry['code']}")
            stockpile_ids[entry["material_type"]] = result.stockpile.id

        vehicle = _require(
            actions.register_vehicle({"code": "HT-01", "description": "Haul truck", "capacity_tonnes": 40}),
            "register HT-01",
        ).vehicle
        shift = _require(actions.start_shift({"vehicle_id": vehicle.id}), "start haul shift").shift
        for material, stockpile_id in stockpile_ids.items():
            for _ in range(args.days):
                _require(
                    actions.record_load({"shift_id": shift.id, "stockpile_id": stockpile_id, "tonnage": 40}),
                    f"haul {material}",
                )
        _require(actions.end_shift({"shift_id": shift.id}), "end haul shift")

        print(f"  [4/5] Running {args.days} day(s) of mixing and crushing...")
        for day in range(1, args.days + 1):
            mix = _require(
                actions.create_batch("mixing", {"code": f"MIX-{day:03d}", "target_output": 20}),
                f"create MIX-{day:03d}",
            ).aggregate
            for material, quantity in (("clay", 12), ("shale", 8)):
                _require(
                    actions.add_component("mixing", {
                        "batch_id": mix.id,
                        "pool_id": stockpile_ids[material],
                        "quantity": quantity,
                        "material_type": material,
                    }),
                    f"add {material} to {mix.code}",
                )
            _require(actions.start_batch("mixing", {"batch_id": mix.id}), f"start {mix.code}")
            _require(
                actions.complete_batch("mixing", {
                    "batch_id": mix.id,
                    "output_quantity": 19.5,
                    "quality_metric": 14.2,
                }),
                f"complete {mix.code}",
            )

            crush = _require(
                actions.create_batch("crushing", {"code": f"CR-{day:03d}", "target_output": 19}),
                f"create CR-{day:03d}",
            ).aggregate
            _require(
                actions.add_component("crushing", {
                    "batch_id": crush.id,
                    "pool_id": mix.id,
                    "quantity": 19.5,
                    "material_type": "mix",
                }),
                f"feed {mix.code} to {crush.code}",
            )
            _require(actions.start_batch("crushing", {"batch_id": crush.id}), f"start {crush.code}")
            _require(
                actions.complete_batch("crushing", {"batch_id": crush.id, "output_quantity": 19}),
                f"complete {crush.code}",
            )
            print(f"         day {day}: {mix.code} -> {crush.code}")

        print("  [5/5] Done.")
        checker = AvailabilityChecker(session)
        for material, stockpile_id in stockpile_ids.items():
            available = checker.available_quantity(
                config.pools["stockpile"], stockpile_id, DEMO_TENANT_ID,
            )
            print(f"         {material:<6} {available:>8g} t available")
        return 0
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())

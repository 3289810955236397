from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from app.db.session import SessionLocal
from app.services.forecasts import get_open_settlements, regenerate_account_forecasts
from app.services.ingestion import record_sales_volumes
from app.services.providers import StoredVolumeWeightProvider
from app.services.seed import seed_demo_data


# Weekday-heavy shape so the weighted schedule differs from an even split.
WEEKDAY_VOLUME = [Decimal(amount) for amount in ("260.00", "240.00", "220.00", "210.00", "230.00", "120.00", "120.00")]


def main() -> None:
    with SessionLocal() as db:
        account = seed_demo_data(db)
        if account is None:
            print("Demo account already present; nothing to do.")
            return
        volumes = {}
        for settlement in get_open_settlements(db, account.id):
            day = settlement.period_start
            while day <= settlement.period_end:
                volumes[day] = WEEKDAY_VOLUME[day.weekday()]
                day += timedelta(days=1)
        record_sales_volumes(db, account, volumes)
        regenerate_account_forecasts(db, account, StoredVolumeWeightProvider(db))
        db.commit()
        print(f"Seeded {account.code} with {len(volumes)} days of sales volume.")


if __name__ == "__main__":
    main()

import argparse

from dairy_portal.db import SessionLocal
from dairy_portal.security.sessions import purge_expired_sessions
from dairy_portal.services.balance_service import find_balance_drift, reconcile_balances
from dairy_portal.services.delivery_service import backfill_time_of_day


def backfill_times() -> int:
    with SessionLocal() as db:
        updated = backfill_time_of_day(db)
        db.commit()
    return updated


def reconcile(dry_run: bool = False) -> tuple[int, int]:
    """Rebuild cached balances from deliveries and payments; returns (drifted, refreshed)."""
    with SessionLocal() as db:
        drifted = len(find_balance_drift(db))
        if dry_run:
            return drifted, 0
        refreshed = reconcile_balances(db)
        db.commit()
    return drifted, refreshed


def purge_sessions() -> int:
    with SessionLocal() as db:
        removed = purge_expired_sessions(db)
        db.commit()
    return removed


def main() -> None:
    parser = argparse.ArgumentParser(description='Maintenance tasks for delivery and balance data.')
    subparsers = parser.add_subparsers(dest='command', required=True)
    subparsers.add_parser('time-of-day', help='Fill the structured time of day on legacy delivery rows from their notes.')
    reconcile_parser = subparsers.add_parser('reconcile', help='Recompute cached customer balances.')
    reconcile_parser.add_argument('--dry-run', action='store_true', help='Only report customers whose cached balance drifted.')
    subparsers.add_parser('purge-sessions', help='Delete expired and revoked login sessions.')
    args = parser.parse_args()

    if args.command == 'time-of-day':
        updated = backfill_times()
        print(f'Time of day backfill complete: updated={updated}')
        return

    if args.command == 'purge-sessions':
        removed = purge_sessions()
        print(f'Session purge complete: removed={removed}')
        return

    drifted, refreshed = reconcile(dry_run=args.dry_run)
    print(f'Balance reconcile complete: drifted={drifted}, refreshed={refreshed}')


if __name__ == '__main__':
    main()

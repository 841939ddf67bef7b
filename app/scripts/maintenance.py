import argparse
from datetime import datetime, timedelta
from typing import Optional

from app import create_app
from app.errors import PersistenceError
from app.models import ActivityLog, Agenda, AgendaStatus
from app.services.registry import get_services


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Pemeliharaan berkala: tolak agenda pending lama dan bersihkan log aktivitas."
    )
    parser.add_argument(
        "--stale-days",
        type=int,
        default=None,
        help="Tolak agenda pending yang lebih tua dari N hari (default dari konfigurasi).",
    )
    parser.add_argument(
        "--clean-logs",
        type=int,
        default=None,
        metavar="KEEP_DAYS",
        help="Hapus log aktivitas yang lebih tua dari KEEP_DAYS hari.",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Eksekusi perubahan. Tanpa ini hanya preview.",
    )
    return parser.parse_args(argv)


def count_stale_agendas(max_days: int) -> int:
    cutoff = datetime.utcnow() - timedelta(days=max_days)
    return Agenda.query.filter(Agenda.status == AgendaStatus.PENDING, Agenda.created_at < cutoff).count()


def count_old_logs(keep_days: int) -> int:
    cutoff = datetime.utcnow() - timedelta(days=keep_days)
    return ActivityLog.query.filter(ActivityLog.created_at < cutoff).count()


def run(stale_days: Optional[int], keep_days: Optional[int], execute: bool) -> int:
    services = get_services()
    stale_days = services.settings.stale_pending_days if stale_days is None else stale_days

    print(f"Agenda pending > {stale_days} hari: {count_stale_agendas(stale_days)}")
    if keep_days is not None:
        print(f"Log aktivitas > {keep_days} hari: {count_old_logs(keep_days)}")

    if not execute:
        print("Mode preview. Tambahkan --yes untuk eksekusi.")
        return 0

    try:
        rejected = services.agendas.auto_reject_stale(stale_days)
        print(f"Agenda ditolak otomatis: {rejected}")
        if keep_days is not None:
            removed = services.activity_logger.clean_old_logs(keep_days)
            print(f"Log aktivitas dihapus: {removed}")
    except PersistenceError as exc:
        print(f"Gagal pemeliharaan: {exc.message}")
        return 1
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    app = create_app()

    with app.app_context():
        return run(args.stale_days, args.clean_logs, args.yes)


if __name__ == "__main__":
    raise SystemExit(main())

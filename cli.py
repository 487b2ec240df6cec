import argparse
import datetime
import json
import logging
import os
import shutil
import time

import requests

from rest_api import GymdagbokenAPI

logger = logging.getLogger(__name__)

JOB_COMMANDS = ("match-pools", "complete-pools", "send-reminders", "send-goal-reminders")


def export_user(db_path: str, yaml_path: str, user_id: str, output_dir: str = ".") -> str:
    """Write all training data of ``user_id`` to a JSON file and return its path."""
    api = GymdagbokenAPI(db_path=db_path, yaml_path=yaml_path)
    data = {
        "user_id": user_id,
        "exported_at": datetime.datetime.now().isoformat(timespec="seconds"),
        "profile": api.profiles.fetch(user_id),
        "stats": api.user_stats.fetch(user_id),
        "workouts": api.tracking.workout_history(user_id),
        "cardio": api.cardio_logs.fetch_for_user(user_id, None),
        "scheduled_workouts": api.scheduled_workouts.fetch_for_user(user_id),
        "programs": api.workout_programs.fetch_for_user(user_id),
        "cardio_plans": api.cardio_plans.fetch_for_user(user_id),
        "photos": api.progress_photos.fetch_for_user(user_id),
        "weight_logs": api.weight_logs.fetch_for_user(user_id),
        "goals": api.user_goals.fetch_for_user(user_id),
    }
    os.makedirs(output_dir, exist_ok=True)
    out_path = os.path.join(output_dir, f"export_{user_id}.json")
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    logger.info("exported %s to %s", user_id, out_path)
    return out_path


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def run_job(db_path: str, yaml_path: str, job: str) -> dict:
    api = GymdagbokenAPI(db_path=db_path, yaml_path=yaml_path)
    if job == "match-pools":
        return api.pool.match_pool()
    if job == "complete-pools":
        return api.pool.complete_pools()
    if job == "send-goal-reminders":
        return api.goals.send_reminders()
    return api.planner.send_reminders()


def benchmark(url: str, runs: int = 10) -> None:
    times: list[float] = []
    for _ in range(runs):
        t0 = time.time()
        requests.get(f"{url}/health", timeout=5)
        times.append(time.time() - t0)
    avg = sum(times) / len(times)
    print(f"Average /health response time over {runs} runs: {avg:.4f}s")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Gymdagboken utility commands")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--db", default="gymdagboken.db")
    parser.add_argument("--yaml", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    srv = sub.add_parser("serve")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    srv.add_argument("--scheduler", action="store_true")

    for job in JOB_COMMANDS:
        sub.add_parser(job)

    exp = sub.add_parser("export")
    exp.add_argument("--user", required=True)
    exp.add_argument("--out", default=".")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")

    bench = sub.add_parser("benchmark")
    bench.add_argument("--url", default="http://localhost:8000")
    bench.add_argument("--runs", type=int, default=10)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "serve":
        import uvicorn

        api = GymdagbokenAPI(
            db_path=args.db, yaml_path=args.yaml, start_scheduler=args.scheduler
        )
        uvicorn.run(api.app, host=args.host, port=args.port)
    elif args.cmd in JOB_COMMANDS:
        print(json.dumps(run_job(args.db, args.yaml, args.cmd)))
    elif args.cmd == "export":
        print(export_user(args.db, args.yaml, args.user, args.out))
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "benchmark":
        benchmark(args.url, args.runs)


if __name__ == "__main__":
    main()

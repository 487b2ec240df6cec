import datetime
from rest_api import GymdagbokenAPI


def seed(db_path: str = "gymdagboken.db", yaml_path: str = "settings.yaml") -> None:
    api = GymdagbokenAPI(db_path=db_path, yaml_path=yaml_path)
    if api.workout_logs.count():
        print("Database already contains workouts")
        return

    api.profiles.upsert("demo", "Demo", 1990, "female")
    api.tracking.log_workout(
        "demo",
        "Dag 1",
        [
            {"exercise_name": "Bänkpress", "sets_completed": 3, "reps_completed": "8", "weight_kg": 60.0},
            {"exercise_name": "Knäböj", "sets_completed": 3, "reps_completed": "8", "weight_kg": 80.0},
        ],
        duration_minutes=45,
    )
    api.tracking.log_cardio("demo", "running", 30, 5.0)
    today = datetime.date.today()
    api.challenges.create(
        title="Oktoberlöpning",
        goal_description="Spring så långt du kan",
        goal_unit="km",
        start_date=today.isoformat(),
        end_date=(today + datetime.timedelta(days=30)).isoformat(),
    )
    print("Seed data inserted")


if __name__ == "__main__":
    seed()

from pydantic import BaseModel, ValidationError

class SettingsSchema(BaseModel):
    language: str = "sv"
    distance_unit: str = "km"
    timezone: str = "Europe/Stockholm"
    ai_model: str = "google/gemini-2.5-flash"
    ai_gateway_url: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    ai_api_key: str | bool = ""
    admin_token: str | bool = ""
    gps_max_accuracy_m: float = 50.0
    gps_max_speed_kmh: float = 50.0
    draft_expiry_hours: int = 24
    max_xp_per_workout: int = 500
    cardio_xp_per_minute: float = 2.0
    cardio_xp_per_km: float = 10.0
    signed_url_ttl_seconds: int = 3600
    photo_dir: str = "progress_photos"
    jobs_interval_minutes: int = 15

def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))

import copy
import json
import logging
import re
from typing import Optional

import requests
from pydantic import BaseModel, ConfigDict, ValidationError

from config import env_override
from db import (
    SettingsRepository,
    WorkoutProgramRepository,
    CardioPlanRepository,
    SavedWodRepository,
)
from localization import _

logger = logging.getLogger(__name__)


class AIServiceError(Exception):
    """Base error for failed plan generation requests."""

    status_code = 500

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or _("Ett fel uppstod"))
        self.message = str(self)


class AIConfigurationError(AIServiceError):
    status_code = 500

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or _("AI-tjänsten är inte konfigurerad"))


class AIRateLimitError(AIServiceError):
    status_code = 429

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or _("För många förfrågningar. Vänta en stund och försök igen.")
        )


class AICreditsExhaustedError(AIServiceError):
    status_code = 402

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or _("AI-krediter slut. Kontakta administratören."))


class AIResponseFormatError(AIServiceError):
    status_code = 502

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or _("Kunde inte tolka AI-svaret"))


class _Loose(BaseModel):
    model_config = ConfigDict(extra="allow")


class ProgramExercise(_Loose):
    name: str
    sets: int
    reps: str | int
    rest: Optional[str] = None
    notes: Optional[str] = None


class ProgramDay(_Loose):
    day: str
    focus: Optional[str] = None
    exercises: list[ProgramExercise]


class WorkoutProgram(_Loose):
    name: str
    description: Optional[str] = None
    weeks: Optional[int] = None
    days: list[ProgramDay]


class CardioSession(_Loose):
    day: str
    type: str
    activity: Optional[str] = None
    duration: Optional[float] = None
    distance: Optional[float] = None
    intensity: Optional[str] = None
    description: Optional[str] = None


class CardioWeek(_Loose):
    weekNumber: int
    theme: Optional[str] = None
    totalDistance: Optional[float] = None
    sessions: list[CardioSession]


class CardioPlan(_Loose):
    name: str
    description: Optional[str] = None
    totalWeeks: int
    goalSummary: Optional[str] = None
    tips: list[str] = []
    weeks: list[CardioWeek]


class WodExercise(_Loose):
    name: str
    reps: str | int


class Wod(_Loose):
    name: str
    format: str
    duration: str | int
    exercises: list[WodExercise]
    description: Optional[str] = None
    scaling: Optional[str] = None


class GoalSuggestion(_Loose):
    title: str
    description: Optional[str] = None
    goal_type: str = "custom"
    target_value: Optional[float] = None
    target_unit: Optional[str] = None
    weeks_to_complete: Optional[int] = None


class GoalSuggestions(_Loose):
    goals: list[GoalSuggestion]
    encouragement: Optional[str] = None


SHAPES = {"program": WorkoutProgram, "plan": CardioPlan, "wod": Wod, "goals": GoalSuggestions}
REFINABLE = ("program", "plan", "wod")

_JSON_RE = re.compile(r"\{[\s\S]*\}")


def extract_json(content: str | None) -> dict:
    """Parse the outermost JSON object embedded in ``content``."""
    match = _JSON_RE.search(content or "")
    if not match:
        logger.error("no JSON object in AI response")
        raise AIResponseFormatError()
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.error("failed to parse AI response: %s", e)
        raise AIResponseFormatError() from e
    if not isinstance(data, dict):
        raise AIResponseFormatError()
    return data


def validate_shape(kind: str, data: dict) -> dict:
    try:
        return SHAPES[kind](**data).model_dump(exclude_none=True)
    except ValidationError as e:
        logger.error("AI %s did not match expected shape: %s", kind, e)
        raise AIResponseFormatError() from e


class AIGatewayClient:
    """Minimal client for an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: str,
        url: str,
        model: str,
        timeout: float = 60,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.model = model
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: SettingsRepository) -> "AIGatewayClient":
        key = settings.get_text("ai_api_key", "")
        if key in ("True", "False"):
            key = ""
        return cls(
            env_override("AI_API_KEY", key),
            env_override(
                "AI_GATEWAY_URL",
                settings.get_text(
                    "ai_gateway_url", "https://ai.gateway.lovable.dev/v1/chat/completions"
                ),
            ),
            settings.get_text("ai_model", "google/gemini-2.5-flash"),
        )

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        if not self.api_key:
            logger.error("AI API key is not configured")
            raise AIConfigurationError()
        try:
            resp = requests.post(
                self.url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("AI gateway request failed: %s", e)
            raise AIServiceError() from e
        if resp.status_code == 429:
            logger.warning("AI gateway rate limited")
            raise AIRateLimitError()
        if resp.status_code == 402:
            logger.warning("AI gateway credits exhausted")
            raise AICreditsExhaustedError()
        if not 200 <= resp.status_code < 300:
            logger.error("AI gateway error: %s %s", resp.status_code, resp.text)
            raise AIServiceError()
        try:
            return resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error("unexpected AI gateway payload: %s", e)
            raise AIResponseFormatError() from e


WORKOUT_SYSTEM_PROMPT = """Du är en expert personlig tränare som skapar skräddarsydda träningsprogram på svenska.
Du skapar alltid realistiska, effektiva program baserade på användarens mål och erfarenhetsnivå.

Svara ALLTID i JSON-format med följande struktur:
{
  "name": "Programnamn",
  "description": "Kort beskrivning av programmet",
  "weeks": 4,
  "days": [
    {
      "day": "Dag 1",
      "focus": "Fokusområde (t.ex. Bröst & Triceps)",
      "exercises": [
        {"name": "Övningsnamn", "sets": 3, "reps": "8-12", "rest": "60-90 sek", "notes": "Eventuella tips"}
      ]
    }
  ]
}"""

CARDIO_SYSTEM_PROMPT = """Du är en expert konditions- och löparcoach som skapar skräddarsydda träningsplaner på svenska.
Du skapar alltid realistiska, progressiva program baserade på användarens mål, nuvarande kondition och erfarenhetsnivå.

Viktiga principer:
- Bygg upp gradvis (10% ökning per vecka max)
- Inkludera vilodag(ar)
- Variera intensitet (lätt, medel, intervall, långpass)
- Anpassa efter måltyp (maraton, 5K, kondition, viktnedgång)

Svara ALLTID i JSON-format med följande struktur:
{
  "name": "Plannamn",
  "description": "Kort beskrivning av planen och dess mål",
  "totalWeeks": 12,
  "goalSummary": "Sammanfattning av målet",
  "tips": ["Tips 1", "Tips 2"],
  "weeks": [
    {
      "weekNumber": 1,
      "theme": "Basbyggnad",
      "totalDistance": 25,
      "sessions": [
        {"day": "Måndag", "type": "Lätt löpning", "activity": "running", "duration": 30, "distance": 5,
         "intensity": "låg", "description": "Lätt och avslappnat tempo", "heartRateZone": "Zon 2"}
      ]
    }
  ]
}"""

WOD_SYSTEM_PROMPT = """Du är en CrossFit-tränare som skapar korta, intensiva Workout of the Day (WOD).
Skapa EN snabb WOD som tar 10-20 minuter. Använd klassiska format som AMRAP, EMOM, For Time eller Chipper.

Svara ENDAST med JSON i detta format:
{
  "name": "Kreativt namn på WOD",
  "format": "AMRAP/EMOM/For Time/etc",
  "duration": "15 min",
  "exercises": [{"name": "Övningsnamn", "reps": "10"}],
  "description": "Kort beskrivning av hur man utför WOD",
  "scaling": "Tips för att skala ner/upp"
}"""

GOALS_SYSTEM_PROMPT = """Du är en personlig träningscoach som hjälper användare att sätta upp realistiska och motiverande träningsmål.

Baserat på användarens svar, föreslå 2-3 konkreta mål. Varje mål ska vara SMART, motiverande och ha en tydlig målsättning med siffror.

Svara ENDAST med JSON i detta format:
{
  "goals": [
    {
      "title": "Kort titel för målet",
      "description": "Förklaring varför detta mål passar användaren",
      "goal_type": "strength|cardio|weight|habit|custom",
      "target_value": 12,
      "target_unit": "sessions|kg|km|minutes",
      "weeks_to_complete": 8
    }
  ],
  "encouragement": "En personlig uppmuntring till användaren"
}"""

FALLBACK_GOALS = {
    "goals": [
        {
            "title": "Träna regelbundet",
            "description": "Bygg en stabil träningsvana genom att träna minst 3 gånger per vecka",
            "goal_type": "habit",
            "target_value": 12,
            "target_unit": "sessions",
            "weeks_to_complete": 4,
        }
    ],
    "encouragement": "Varje träningspass är ett steg mot ditt bästa jag!",
}

REFINE_SYSTEM_PROMPT = """Du är en expert personlig tränare som hjälper användare att finjustera sina träningsplaner.
Den nuvarande planen är:
{current}

Om användaren bara har en fråga eller är nöjd, svara med:
{{"type": "message", "content": "Ditt meddelande här"}}

Om du gör ändringar, svara med:
{{"type": "{kind}", "{kind}": {{ ... den uppdaterade planen i samma format ... }}, "changes": "Kort sammanfattning av vad du ändrade"}}"""


def cardio_goal_description(goal_type: str, target_value: str | None) -> str:
    if goal_type == "marathon":
        return f"förbereda sig för ett maraton (42.195 km) med måltid {target_value or '4:30:00'}"
    if goal_type == "half_marathon":
        return f"förbereda sig för ett halvmaraton (21.1 km) med måltid {target_value or '2:00:00'}"
    if goal_type == "10k":
        return f"förbereda sig för ett 10 km lopp med måltid {target_value or '50:00'}"
    if goal_type == "5k":
        return f"förbereda sig för ett 5 km lopp med måltid {target_value or '25:00'}"
    if goal_type == "distance_weekly":
        return f"bygga upp till att springa {target_value} km per vecka"
    if goal_type == "duration_weekly":
        return f"träna kondition {target_value} minuter per vecka"
    if goal_type == "weight_loss":
        return "förbättra konditionen med fokus på kaloriförbränning och fettförbränning"
    if goal_type == "general_fitness":
        return "förbättra allmän kondition och uthållighet"
    return f"nå konditionsmålet: {target_value or 'förbättrad kondition'}"


class PlanGenerationService:
    """Generate, refine and persist AI training plans."""

    def __init__(
        self,
        client: AIGatewayClient,
        program_repo: WorkoutProgramRepository,
        cardio_plan_repo: CardioPlanRepository,
        wod_repo: SavedWodRepository,
    ) -> None:
        self.client = client
        self.programs = program_repo
        self.cardio_plans = cardio_plan_repo
        self.wods = wod_repo

    def _generate(self, kind: str, system_prompt: str, user_prompt: str) -> dict:
        content = self.client.complete(system_prompt, user_prompt)
        return validate_shape(kind, extract_json(content))

    def generate_workout(self, goal: str, experience_level: str, days_per_week: int) -> dict:
        if days_per_week < 1 or days_per_week > 7:
            raise ValueError("days_per_week must be between 1 and 7")
        user_prompt = (
            f"Skapa ett {days_per_week}-dagars träningsprogram för någon med följande profil:\n"
            f"- Mål: {goal}\n"
            f"- Erfarenhetsnivå: {experience_level}\n"
            f"- Träningsdagar per vecka: {days_per_week}\n\n"
            "Ge mig ett komplett program med övningar, sets, reps och vila. "
            "Svara endast med JSON, ingen annan text."
        )
        return {"program": self._generate("program", WORKOUT_SYSTEM_PROMPT, user_prompt)}

    def generate_cardio_plan(
        self,
        goal_type: str,
        target_value: str | None = None,
        target_date: str | None = None,
        experience_level: str | None = None,
        current_fitness: str | None = None,
        preferred_activities: list[str] | None = None,
        days_per_week: int | None = None,
        custom_description: str | None = None,
    ) -> dict:
        lines = [
            "Skapa en detaljerad konditionsträningsplan för någon med följande profil:",
            f"- Mål: {cardio_goal_description(goal_type, target_value)}",
        ]
        if target_date:
            lines.append(f"- Måldatum: {target_date}")
        lines.append(f"- Erfarenhetsnivå: {experience_level or 'nybörjare'}")
        lines.append(f"- Nuvarande konditionsnivå: {current_fitness or 'grundläggande'}")
        lines.append(
            f"- Föredragna aktiviteter: {', '.join(preferred_activities or []) or 'löpning'}"
        )
        lines.append(f"- Tillgängliga träningsdagar per vecka: {days_per_week or 3}")
        if custom_description:
            lines.append(f"- Användarens egna önskemål och begränsningar: {custom_description}")
        lines.append("")
        lines.append(
            "Skapa en komplett plan med veckoschema, sessioner med typ, duration, distans och intensitet. "
            "Ge praktiska tips för att lyckas med träningen. Svara endast med JSON, ingen annan text."
        )
        return {"plan": self._generate("plan", CARDIO_SYSTEM_PROMPT, "\n".join(lines))}

    def generate_wod(self, focus: str | None = None, equipment: list[str] | None = None) -> dict:
        prompt = "Generera en ny WOD för idag. Var kreativ och variera övningarna!"
        if focus:
            prompt += f" Fokus: {focus}."
        if equipment:
            prompt += f" Tillgänglig utrustning: {', '.join(equipment)}."
        return {"wod": self._generate("wod", WOD_SYSTEM_PROMPT, prompt)}

    def suggest_goals(self, user_context: str) -> dict:
        """Suggest goals for ``user_context``, falling back to a habit goal on unreadable output."""
        if not user_context:
            raise ValueError("user_context is required")
        try:
            return self._generate("goals", GOALS_SYSTEM_PROMPT, user_context)
        except AIResponseFormatError:
            logger.warning("using fallback goal suggestions")
            return copy.deepcopy(FALLBACK_GOALS)

    def refine(self, kind: str, current: dict, feedback: str) -> dict:
        """Ask the model to revise ``current`` or answer a question about it."""
        if kind not in REFINABLE:
            raise ValueError("kind must be program, plan or wod")
        if not feedback:
            raise ValueError("feedback is required")
        system_prompt = REFINE_SYSTEM_PROMPT.format(
            current=json.dumps(current, ensure_ascii=False, indent=2), kind=kind
        )
        data = extract_json(self.client.complete(system_prompt, feedback))
        if data.get("type") == "message":
            return {"type": "message", "content": str(data.get("content", ""))}
        revised = data.get(kind)
        if not isinstance(revised, dict):
            # Some responses return the revised document without a wrapper.
            revised = {k: v for k, v in data.items() if k not in ("type", "changes")}
        return {
            "type": kind,
            kind: validate_shape(kind, revised),
            "changes": data.get("changes"),
        }

    def save_program(
        self,
        user_id: str,
        program: dict,
        goal: str | None = None,
        experience_level: str | None = None,
        days_per_week: int | None = None,
        active: bool = True,
    ) -> int:
        program = validate_shape("program", program)
        return self.programs.add(user_id, program, goal, experience_level, days_per_week, active)

    def save_cardio_plan(
        self, user_id: str, plan: dict, goal_type: str | None = None, active: bool = True
    ) -> int:
        plan = validate_shape("plan", plan)
        return self.cardio_plans.add(user_id, plan, goal_type, active)

    def save_wod(self, user_id: str, wod: dict) -> int:
        return self.wods.add(user_id, validate_shape("wod", wod))

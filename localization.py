class Translator:
    def __init__(self) -> None:
        self.language = "sv"
        self.translations = {
            "sv": {},
            "en": {
                "Utmaning matchad! 🎯": "Challenge matched! 🎯",
                "Du vann! 🏆": "You won! 🏆",
                "Utmaningen avslutad": "Challenge ended",
                "Du har blivit omkörd": "You have been overtaken",
                "Dags att träna!": "Time to train!",
                "Ny prestation!": "New achievement!",
                "För många förfrågningar. Vänta en stund och försök igen.": "Too many requests. Wait a moment and try again.",
                "AI-krediter slut. Kontakta administratören.": "AI credits exhausted. Contact the administrator.",
                "Kunde inte tolka AI-svaret": "Could not parse the AI response",
                "AI-tjänsten är inte konfigurerad": "The AI service is not configured",
                "Ett fel uppstod": "An error occurred",
                "Anonym": "Anonymous",
                "Viktmål": "Weight goal",
                "Nå målvikten": "Reach the target weight of",
                "🎯 Målpåminnelse": "🎯 Goal reminder",
                "Glöm inte ditt mål": "Don't forget your goal",
                "Du har {count} aktiva mål att följa upp!": "You have {count} active goals to follow up!",
                "Schemalagt träningspass": "Scheduled workout",
                "Planerad längd: {minutes} minuter": "Planned duration: {minutes} minutes",
                "Påminnelse": "Reminder",
                "Gymdagboken Träningsschema": "Gymdagboken training schedule",
            },
        }

    def set_language(self, lang: str) -> None:
        self.language = lang

    def gettext(self, key: str) -> str:
        return self.translations.get(self.language, {}).get(key, key)

translator = Translator()
_ = translator.gettext

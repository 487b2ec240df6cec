import logging

from db import AdRepository, AdStatsRepository

logger = logging.getLogger(__name__)


class AdService:
    """Serve ads and track their impressions and clicks."""

    EVENTS = ("impression", "click")
    FORMATS = ("banner", "square", "native")

    def __init__(self, ad_repo: AdRepository, stats_repo: AdStatsRepository) -> None:
        self.ads = ad_repo
        self.stats = stats_repo

    def create(self, **fields) -> int:
        if fields.get("format", "banner") not in self.FORMATS:
            raise ValueError("invalid ad format")
        return self.ads.add(**fields)

    def update(self, ad_id: int, **fields) -> None:
        if fields.get("format") is not None and fields["format"] not in self.FORMATS:
            raise ValueError("invalid ad format")
        self.ads.update(ad_id, **fields)

    def delete(self, ad_id: int) -> None:
        self.ads.delete(ad_id)

    def list_all(self) -> list[dict]:
        return self.ads.fetch_all_ads()

    def pick(self, placement: str | None = None) -> list[dict]:
        return self.ads.fetch_active(placement)

    def record_event(self, ad_id: int, event_type: str, user_id: str | None = None) -> int:
        if event_type not in self.EVENTS:
            raise ValueError("event_type must be impression or click")
        self.ads.fetch(ad_id)
        return self.stats.add(ad_id, event_type, user_id)

    def ad_statistics(self) -> list[dict]:
        return self.stats.statistics()

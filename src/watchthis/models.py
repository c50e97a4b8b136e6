"""Value types shared across the recommendation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field

from .scraper import list_url


@dataclass(frozen=True)
class User:
    username: str
    list_url: str

    @classmethod
    def from_username(cls, username: str) -> "User":
        return cls(username=username, list_url=list_url(username))


@dataclass
class Entry:
    """
    A series seen in at least one sampled list.

    `counter` is the number of sampled users whose list contained the
    series. It only ever grows during aggregation; normalization writes
    `popularity` instead so the eligibility gates keep working on raw counts.
    """

    title: str
    url: str
    counter: int = 1
    bonus: float = 0.0
    popularity: float | None = None
    reasons: list[str] = field(default_factory=list)

    def increment_counter(self) -> None:
        self.counter += 1

    def add_to_bonus(self, value: float, reason: str | None = None) -> None:
        self.bonus += value
        if reason:
            self.reasons.append(reason)

    @property
    def match_value(self) -> float:
        base = self.popularity if self.popularity is not None else self.counter
        return base + self.bonus

    def __lt__(self, other: "Entry") -> bool:
        return self.match_value < other.match_value


@dataclass
class Recommendation:
    title: str
    url: str
    score: float
    popularity: float
    bonus: float
    counter: int
    reasons: list[str] = field(default_factory=list)

    @classmethod
    def from_entry(cls, entry: Entry) -> "Recommendation":
        return cls(
            title=entry.title,
            url=entry.url,
            score=entry.match_value,
            popularity=entry.popularity if entry.popularity is not None else float(entry.counter),
            bonus=entry.bonus,
            counter=entry.counter,
            reasons=list(entry.reasons),
        )

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "url": self.url,
            "score": round(self.score, 2),
            "popularity": round(self.popularity, 2),
            "bonus": round(self.bonus, 2),
            "counter": self.counter,
            "reasons": self.reasons,
        }

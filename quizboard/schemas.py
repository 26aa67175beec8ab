"""Request payloads accepted by the JSON API."""
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .leaderboard import DEFAULT_LIMIT, MAX_LIMIT

OptionKey = Literal["A", "B", "C", "D"]
TimeFilter = Literal["all-time", "this-week", "this-month"]


class AttemptIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    selected_answer: OptionKey = Field(..., examples=["B"])

    @field_validator("selected_answer", mode="before")
    @classmethod
    def upper_option(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


class QuizAnswerIn(AttemptIn):
    question_id: int = Field(..., ge=1)


class QuizSubmissionIn(BaseModel):
    answers: List[QuizAnswerIn] = Field(..., min_length=1)

    def pairs(self):
        return [(a.question_id, a.selected_answer) for a in self.answers]


class LeaderboardQuery(BaseModel):
    filter: TimeFilter = "all-time"
    limit: int = Field(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)


def _split(value):
    if isinstance(value, str):
        return [part.strip().lower() for part in value.split(",") if part.strip()]
    return value


class QuestionQuery(BaseModel):
    """Filters and paging for question browsing (``?difficulty=easy,hard&page=2``)."""

    difficulty: List[Literal["easy", "medium", "hard"]] = []
    tags: List[str] = []
    status: Literal["all", "solved", "unsolved"] = "all"
    search: str = ""
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    sort_by: Literal["newest", "difficulty", "number"] = "newest"
    sort_order: Literal["asc", "desc"] = "desc"

    @field_validator("difficulty", "tags", mode="before")
    @classmethod
    def split_lists(cls, value):
        return _split(value)

    @field_validator("search", mode="before")
    @classmethod
    def strip_search(cls, value):
        return value.strip() if isinstance(value, str) else value


class TagQuery(BaseModel):
    include_user_progress: bool = False


def parse(model, data):
    """Validate ``data`` into ``model`` or raise the API's ValidationError."""
    try:
        return model.model_validate(data or {})
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first["loc"]) or "body"
        raise ValidationError(f"Invalid {where}: {first['msg']}") from None

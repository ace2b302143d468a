from typing import Annotated, Any, List, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .query_ast import SUPPORTED_FIELDS


class QueryParserConfig(BaseModel):
    case_sensitive: bool = False
    allow_fuzzy_student_names: bool = True
    # Used between adjacent clauses that have no explicit operator
    default_operator: Literal["AND", "OR"] = "AND"
    supported_fields: List[str] = Field(default_factory=lambda: list(SUPPORTED_FIELDS))
    # strptime formats tried after ISO dates, in order
    date_formats: List[str] = Field(default_factory=lambda: ["%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y"])


class SearchSettings(BaseSettings):
    """
    Engine and API settings, overridable from the environment:

      ATTENDANCE_SEARCH_FUZZY_THRESHOLD   minimum fuzzy score kept (default 0.3)
      ATTENDANCE_SEARCH_TEXT_LIMIT        commands scored per text search (default 50)
      ATTENDANCE_SEARCH_DEFAULT_LIMIT     results returned by search() (default 10)
      ATTENDANCE_SEARCH_CORS_ORIGINS      comma-separated origins for the API
      ATTENDANCE_SEARCH_LOG_LEVEL         CLI logging level (default WARNING)
    """

    model_config = SettingsConfigDict(
        env_prefix="ATTENDANCE_SEARCH_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    fuzzy_threshold: float = 0.3
    text_search_limit: int = Field(
        default=50,
        validation_alias=AliasChoices("text_search_limit", "ATTENDANCE_SEARCH_TEXT_LIMIT"),
    )
    default_limit: int = 10
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )
    log_level: str = "WARNING"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


def load_settings() -> SearchSettings:
    return SearchSettings()

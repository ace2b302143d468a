from enum import Enum

from pydantic import BaseModel, ConfigDict


class TokenType(str, Enum):
    STUDENT_REF = "STUDENT_REF"      # @student
    QUOTED_STRING = "QUOTED_STRING"  # "quoted value"
    FIELD = "FIELD"                  # field:
    VALUE = "VALUE"                  # value
    COMPARISON = "COMPARISON"        # >, <, >=, <=, !=
    OPERATOR = "OPERATOR"            # AND, OR, NOT
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    EOF = "EOF"


class Token(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: TokenType
    value: str
    position: int
